"""
Create test users for load testing.

Registers testuser1..N (password test123) that locustfile.py logs in before
the test starts. Run this ONCE before starting your load test.
"""

import sys
from concurrent.futures import ThreadPoolExecutor, as_completed

import requests


def create_user(base_url, username, password, index):
    """Create a single test user"""
    try:
        response = requests.post(
            f"{base_url}/api/auth/register",
            json={
                "username": username,
                "email": f"{username}@loadtest.com",
                "password": password,
            },
            timeout=10,
        )

        if response.status_code == 200:
            return (index, True, username)
        elif response.status_code == 400 and "already exists" in response.text.lower():
            return (index, True, f"{username} (already exists)")
        else:
            return (index, False, f"{username} - {response.status_code}")
    except requests.RequestException as e:
        return (index, False, f"{username} - Error: {e}")


def create_test_users(base_url, num_users=100):
    """
    Create multiple test users concurrently.

    Args:
        base_url: API base URL
        num_users: Number of users to create (default: 100)
    """
    print(f"\n{'=' * 60}")
    print(f"🔧 CREATING {num_users} TEST USERS")
    print(f"{'=' * 60}")
    print(f"Target: {base_url}\n")

    results = []
    with ThreadPoolExecutor(max_workers=10) as executor:
        futures = [
            executor.submit(create_user, base_url, f"testuser{i}", "test123", i)
            for i in range(1, num_users + 1)
        ]
        for future in as_completed(futures):
            results.append(future.result())
            if len(results) % 10 == 0:
                success_count = sum(1 for _, s, _ in results if s)
                print(f"Progress: {len(results)}/{num_users} users ({success_count} successful)")

    results.sort(key=lambda x: x[0])
    success_count = sum(1 for _, success, _ in results if success)

    print(f"\n{'=' * 60}")
    print("📊 SUMMARY")
    print(f"{'=' * 60}")
    print(f"✅ Successfully created: {success_count}/{num_users}")
    print(f"❌ Failed: {num_users - success_count}/{num_users}")
    for _, success, message in results:
        if not success:
            print(f"   {message}")

    if success_count == 0:
        sys.exit(1)

    print("\n💡 Next steps:")
    print("   1. Wait for an auction slot to go LIVE (or trigger /api/admin/scheduler/auto-activate)")
    print(f"   2. locust -f locustfile.py --host={base_url}")


if __name__ == "__main__":
    base_url = sys.argv[1].rstrip("/") if len(sys.argv) > 1 else "http://localhost:8000"
    num_users = int(sys.argv[2]) if len(sys.argv) > 2 else 100

    create_test_users(base_url, num_users)
