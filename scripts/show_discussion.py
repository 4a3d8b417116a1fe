"""
Print the discussion thread of a question or resource.
Run: python scripts/show_discussion.py question 65f1c0ffee0000000000abcd --token <jwt>
"""
import argparse
import asyncio
import os
import sys

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import jwt

from core.discussions.errors import DiscussionError
from discussion_client.api import DiscussionAPI
from discussion_client.render import render_text
from discussion_client.session import DiscussionSession
from models.discussion_model import CurrentUser


async def show(args) -> int:
    # The server verifies the token; here we only need to know who we are
    claims = jwt.decode(args.token, options={"verify_signature": False})
    user = CurrentUser(id=claims["userId"], role=claims.get("role") or "user")

    async with DiscussionAPI(args.api_url, args.token) as api:
        session = DiscussionSession(api, args.item_type, args.item_id, user)
        await session.open()
        if session.error:
            print(f"❌ {session.error.message}")
            return 1
        if not session.messages:
            print("No messages yet.")
            return 0
        print(render_text(session.rows()))
        session.close()
    return 0


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("item_type", choices=["question", "resource"])
    parser.add_argument("item_id")
    parser.add_argument("--token", default=os.getenv("API_TOKEN"), required=os.getenv("API_TOKEN") is None)
    parser.add_argument("--api-url", default=os.getenv("API_URL", "http://localhost:8000"))
    args = parser.parse_args()
    try:
        sys.exit(asyncio.run(show(args)))
    except DiscussionError as e:
        print(f"❌ {e.detail}")
        sys.exit(1)


if __name__ == "__main__":
    main()
