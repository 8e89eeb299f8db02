"""CLI script to send a push notification campaign."""
from __future__ import annotations

import argparse

from app.tasks.notifications import send_push_notification


def main() -> None:
    parser = argparse.ArgumentParser(description="Send a push notification campaign")
    parser.add_argument("--title", required=True, help="Notification title")
    parser.add_argument("--body", required=True, help="Notification body")
    parser.add_argument("--url", default="/", help="URL opened when the notification is clicked")
    parser.add_argument(
        "--role",
        action="append",
        dest="roles",
        default=[],
        help="Target role (repeatable); omit roles and users to broadcast",
    )
    parser.add_argument(
        "--user-id",
        action="append",
        dest="user_ids",
        default=[],
        help="Target user id (repeatable)",
    )
    parser.add_argument("--no-history", action="store_true", help="Do not record the campaign")
    parser.add_argument(
        "--async",
        action="store_true",
        dest="use_async",
        help="Queue task asynchronously instead of running immediately",
    )

    args = parser.parse_args()
    command = {
        "title": args.title,
        "body": args.body,
        "url": args.url,
        "targetRoles": args.roles,
        "targetUsers": args.user_ids,
        "saveToHistory": not args.no_history,
    }

    if args.use_async:
        task = send_push_notification.apply_async(args=(command, "cli"))
        print(f"Task queued: {task.id}")
    else:
        result = send_push_notification.run(command, "cli")
        print(f"Result: {result}")


if __name__ == "__main__":
    main()
