"""
Smoke Test for the Project API - Access Closure, Tasks & Membership

Tests:
1. Owner creates a project with two tasks
2. A stranger cannot read or change it (403)
3. Owner adds a member; the member can now read it
4. Member adds a task, then deletes it; a second delete is 409
5. Removing a non-member is 409 and leaves members unchanged

Run: python smoke_test_projects_api.py

Requirements:
- Service running on localhost:8000 (uvicorn project_service.main:app)
- SECRET_KEY exported with the same value the service uses
- requests installed (pip install -e ".[smoke]")
"""

import os
import sys
import uuid
from typing import Any, Dict, Optional

import requests

from project_service.auth_context import create_access_token

BASE_URL = os.environ.get("PROJECT_API_URL", "http://localhost:8000")
SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")


class TestResult:
    def __init__(self):
        self.passed = 0
        self.failed = 0

    def check(self, name: str, ok: bool, detail: str = ""):
        if ok:
            self.passed += 1
            print(f"✅ PASS: {name}")
        else:
            self.failed += 1
            print(f"❌ FAIL: {name}")
        if detail:
            print(f"  └─ {detail}")
        return ok

    def summary(self):
        print("\n" + "=" * 60)
        print(f"SMOKE TEST SUMMARY: {self.passed} passed, {self.failed} failed")
        print("=" * 60)
        return self.failed == 0


def headers_for(user_id: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user_id, secret=SECRET_KEY)}"}


def create_project(owner: str, member: str) -> Optional[Dict[str, Any]]:
    payload = {
        "name": "Smoke Launch",
        "description": "Created by smoke_test_projects_api.py",
        "startDate": "2024-03-01T00:00:00Z",
        "endDate": "2024-06-01T00:00:00Z",
        "projectMemberIds": [member],
        "projectOwner": owner,
        "tasks": [
            {"title": "Draft", "assignedTo": member, "status": "NotStarted"},
            {"title": "Review", "assignedTo": owner, "status": "InProgress"},
        ],
    }
    resp = requests.post(f"{BASE_URL}/api/project", json=payload, headers=headers_for(owner))
    if resp.status_code == 201:
        return resp.json()
    print(f"  └─ create returned {resp.status_code}: {resp.text}")
    return None


def main():
    result = TestResult()
    run_id = uuid.uuid4().hex[:8]
    owner, member, stranger, newcomer = (f"{name}-{run_id}" for name in ("owner", "member", "stranger", "newcomer"))

    print("=" * 60)
    print("SMOKE TEST: Project API")
    print("=" * 60)

    print("\n📋 TEST 1: Create project with tasks")
    print("-" * 60)
    project = create_project(owner, member)
    if not result.check("Create project", project is not None and len(project["taskIds"]) == 2):
        result.summary()
        return 1
    project_url = f"{BASE_URL}/api/project/{project['id']}"
    print(f"  └─ project_id={project['id']}, status={project['status']}")

    print("\n📋 TEST 2: Access closure")
    print("-" * 60)
    resp = requests.get(project_url, headers=headers_for(stranger))
    result.check("Stranger cannot read", resp.status_code == 403, f"status={resp.status_code}")
    resp = requests.post(f"{project_url}/members", params={"userId": stranger}, headers=headers_for(stranger))
    result.check("Stranger cannot add themselves", resp.status_code == 403, f"status={resp.status_code}")

    print("\n📋 TEST 3: Add member")
    print("-" * 60)
    resp = requests.post(f"{project_url}/members", params={"userId": newcomer}, headers=headers_for(owner))
    result.check("Owner adds member", resp.status_code == 204, f"status={resp.status_code}")
    resp = requests.get(project_url, headers=headers_for(newcomer))
    result.check("New member can read", resp.status_code == 200, f"status={resp.status_code}")

    print("\n📋 TEST 4: Task lifecycle")
    print("-" * 60)
    resp = requests.post(
        f"{project_url}/tasks",
        json={"title": "Smoke task", "assignedTo": newcomer},
        headers=headers_for(newcomer),
    )
    task_id = resp.json().get("id") if resp.status_code == 201 else None
    result.check("Member adds task", task_id is not None, f"status={resp.status_code}")
    if task_id:
        task_url = f"{project_url}/tasks/{task_id}"
        resp = requests.delete(task_url, headers=headers_for(newcomer))
        result.check("Member deletes task", resp.status_code == 204, f"status={resp.status_code}")
        resp = requests.delete(task_url, headers=headers_for(newcomer))
        result.check("Second delete is TaskNotAttached", resp.status_code == 409, f"status={resp.status_code}")

    print("\n📋 TEST 5: Remove non-member")
    print("-" * 60)
    before = requests.get(project_url, headers=headers_for(owner)).json()["projectMembers"]
    resp = requests.delete(f"{project_url}/members", params={"userId": stranger}, headers=headers_for(owner))
    result.check("Removing non-member is 409", resp.status_code == 409, f"status={resp.status_code}")
    after = requests.get(project_url, headers=headers_for(owner)).json()["projectMembers"]
    result.check("Members unchanged", before == after, f"members={after}")

    # Cleanup
    requests.delete(project_url, headers=headers_for(owner))

    success = result.summary()
    return 0 if success else 1


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\n\nTest interrupted by user")
        sys.exit(1)
    except requests.RequestException as e:
        print(f"\n\n❌ ERROR: could not reach {BASE_URL}: {e}")
        sys.exit(1)
