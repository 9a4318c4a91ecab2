#!/usr/bin/env python3
"""
Seed script — creates a small community of creators to click around in.

Creates:
  • 8 users, each following 3 others
  • One event, offer, job, listing or business page per user
  • RSVPs to other users' events (so calendars have external items)
  • 4 posts per user, a few reposts and quotes, and likes
  • Weekday booking hours for the first user, plus one booked appointment

Run after the API is up:
  python scripts/seed_data.py --api-url http://localhost:8000
"""
import argparse
import json
import random
import time
import urllib.error
import urllib.request
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Callable, Optional


BASE_USERS = [
    ("maya_makes", "Maya Okafor"),
    ("leo_live", "Leo Fischer"),
    ("sam_sells", "Sam Patel"),
    ("nora_nails", "Nora Lindqvist"),
    ("omar_outdoors", "Omar Haddad"),
    ("ivy_ink", "Ivy Moreau"),
    ("tom_tunes", "Tom Nakamura"),
    ("zoe_zines", "Zoe Alvarez"),
]

SAMPLE_POSTS = [
    "New batch of prints drying on the line. Shop opens Friday.",
    "Thank you to everyone who came out last night, what a crowd!",
    "Booking slots for next week are open, grab one while they last.",
    "Behind the scenes: three drafts before the final cover.",
    "Trying a new venue this month, details on my calendar.",
    "Hiring a part-time assistant for the studio. DM me.",
    "Coffee, sketchbook, rainy window. Perfect Sunday.",
    "Reminder: the 2-for-1 offer ends tomorrow.",
    "Just hit 100 followers here. Small but mighty.",
    "Packing orders all afternoon. Send snacks.",
    "Collab announcement coming soon 👀",
    "Spring market stall confirmed!",
]


def _in_days(days: int, hour: int = 18) -> str:
    moment = datetime.combine(date.today() + timedelta(days=days), datetime.min.time())
    return moment.replace(hour=hour).isoformat()


CONTENT_MAKERS: list[tuple[str, Callable[[str, int], dict]]] = [
    ("/content/events", lambda uid, n: {
        "author_id": uid, "title": f"Open Studio #{n}", "location": "Studio 4B",
        "start_date": _in_days(random.randint(-20, 30)),
    }),
    ("/content/offers", lambda uid, n: {
        "author_id": uid, "title": "2 for 1 on prints", "category": "Art",
        "start_date": _in_days(random.randint(-5, 10), 9),
    }),
    ("/content/jobs", lambda uid, n: {
        "author_id": uid, "title": "Studio Assistant", "company": "Ink & Paper",
        "job_type": "Part-time", "posting_date": _in_days(-random.randint(0, 14), 9),
    }),
    ("/content/listings", lambda uid, n: {
        "author_id": uid, "title": "Vintage letterpress", "price": "$450", "category": "Equipment",
    }),
    ("/content/business-pages", lambda uid, n: {
        "author_id": uid, "name": "Corner Print Shop", "description": "Risograph and zines",
    }),
]


@dataclass
class ApiClient:
    base_url: str

    def _send(self, method: str, path: str, data: Optional[dict] = None) -> dict:
        url = f"{self.base_url}{path}"
        body = json.dumps(data).encode() if data is not None else None
        req = urllib.request.Request(
            url, data=body, headers={"Content-Type": "application/json"}, method=method
        )
        try:
            with urllib.request.urlopen(req, timeout=10) as resp:
                raw = resp.read()
                return json.loads(raw) if raw else {}
        except urllib.error.HTTPError as e:
            print(f"  HTTP {e.code} on {method} {path}: {e.read().decode()}")
            return {}

    def post(self, path: str, data: dict) -> dict:
        return self._send("POST", path, data)

    def put(self, path: str, data: dict) -> dict:
        return self._send("PUT", path, data)

    def get(self, path: str) -> dict:
        return self._send("GET", path)


def wait_for_api(client: ApiClient, retries: int = 15) -> None:
    print(f"Waiting for API at {client.base_url} ...")
    for _ in range(retries):
        try:
            if client.get("/health").get("status") == "ok":
                print("  API is ready!\n")
                return
        except urllib.error.URLError:
            pass
        time.sleep(3)
    raise RuntimeError(f"API not reachable at {client.base_url} after {retries} retries")


def main(api_url: str) -> None:
    client = ApiClient(api_url)
    wait_for_api(client)

    # ── Users ─────────────────────────────────────────────────────────────
    print("Creating users...")
    user_ids: list[str] = []
    for username, name in BASE_USERS:
        uid = client.post("/users/", {"username": username, "name": name}).get("user_id")
        if uid:
            user_ids.append(uid)
            print(f"  ✓ {username} ({uid})")
        else:
            print(f"  ✗ Failed to create {username}")

    if len(user_ids) < 2:
        print("Not enough users created — aborting")
        return

    # ── Follow graph ──────────────────────────────────────────────────────
    print("\nCreating follow relationships...")
    for follower_id in user_ids:
        others = [u for u in user_ids if u != follower_id]
        for followee_id in random.sample(others, k=min(3, len(others))):
            client.post("/users/follow", {"follower_id": follower_id, "followee_id": followee_id})
    print("  ✓ Follow graph created")

    # ── Content ───────────────────────────────────────────────────────────
    print("\nCreating content...")
    event_ids: dict[str, str] = {}
    for n, uid in enumerate(user_ids):
        path, make = CONTENT_MAKERS[n % len(CONTENT_MAKERS)]
        content_id = client.post(path, make(uid, n)).get("id")
        if content_id and path == "/content/events":
            event_ids[content_id] = uid
        # everyone also hosts one event
        if path != "/content/events":
            path, make = CONTENT_MAKERS[0]
            event_id = client.post(path, make(uid, n)).get("id")
            if event_id:
                event_ids[event_id] = uid
    print(f"  ✓ {len(user_ids)} content records, {len(event_ids)} events")

    rsvps = 0
    for event_id, author_id in event_ids.items():
        for uid in random.sample([u for u in user_ids if u != author_id], k=2):
            client.post(f"/content/events/{event_id}/rsvp", {"user_id": uid})
            rsvps += 1
    print(f"  ✓ {rsvps} RSVPs")

    # ── Posts ─────────────────────────────────────────────────────────────
    print("\nCreating posts...")
    posts: list[tuple[str, str]] = []
    for uid in user_ids:
        for content in random.sample(SAMPLE_POSTS, k=4):
            privacy = random.choice(["public", "public", "followers", "me"])
            post_id = client.post(
                "/posts/", {"author_id": uid, "content": content, "privacy": privacy}
            ).get("id")
            if post_id:
                posts.append((post_id, uid))
    print(f"  ✓ {len(posts)} posts created")

    reposts = quotes = 0
    for post_id, author_id in random.sample(posts, k=min(6, len(posts))):
        uid = random.choice([u for u in user_ids if u != author_id])
        if random.random() < 0.5:
            reposts += bool(client.post(f"/posts/{post_id}/repost", {"user_id": uid}))
        else:
            quotes += bool(client.post(
                "/posts/", {"author_id": uid, "content": "This 👇", "quoted_post_id": post_id}
            ))
    print(f"  ✓ {reposts} reposts, {quotes} quotes")

    likes = 0
    for post_id, _ in posts:
        for uid in random.sample(user_ids, k=random.randint(0, 4)):
            client.post(f"/posts/{post_id}/like", {"user_id": uid})
            likes += 1
    print(f"  ✓ {likes} likes added")

    # ── Appointments ──────────────────────────────────────────────────────
    print("\nOpening appointment hours...")
    owner, booker = user_ids[0], user_ids[1]
    weekdays = ["monday", "tuesday", "wednesday", "thursday", "friday"]
    client.put(
        f"/appointments/settings/{owner}",
        {
            "accepting_appointments": True,
            "availability": {
                day: {"enabled": True, "start_time": "09:00", "end_time": "17:00"}
                for day in weekdays
            },
        },
    )
    day = date.today() + timedelta(days=1)
    while day.weekday() >= 5:
        day += timedelta(days=1)
    client.post(
        "/appointments/",
        {
            "owner_id": owner,
            "booker_id": booker,
            "booker_name": BASE_USERS[1][1],
            "start_time": f"{day.isoformat()}T10:00:00",
        },
    )
    slots = client.get(f"/appointments/slots?user_id={owner}&date={day.isoformat()}")
    print(f"  ✓ {len(slots.get('slots', []))} open slots left on {day.isoformat()}")

    # ── Summary ───────────────────────────────────────────────────────────
    print("\n" + "=" * 60)
    print("Seed complete! Here are some commands to try:\n")
    print(f"# Calendar for '{BASE_USERS[0][0]}':")
    print(f"  curl -s '{api_url}/users/{owner}/calendar' | python3 -m json.tool\n")
    print(f"# Home feed:")
    print(f"  curl -s '{api_url}/feed/?user_id={owner}' | python3 -m json.tool\n")
    print(f"# Profile page:")
    print(f"  curl -s '{api_url}/users/profile/{BASE_USERS[0][0]}?viewer_id={booker}' | python3 -m json.tool\n")
    print(f"# Check Jaeger traces: http://localhost:16686")
    print(f"# Check Prometheus: http://localhost:9090")
    print("=" * 60)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed the BYD Bio API")
    parser.add_argument("--api-url", default="http://localhost:8000", help="API base URL")
    args = parser.parse_args()
    main(args.api_url)
