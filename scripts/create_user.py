"""
Script to create (or update) a user and print a bearer token for it.
Usage:
  python scripts/create_user.py --email admin@example.com --name "Asha Rao" --admin

Upserts the user by email in the users collection, sets `role`, and prints a
token carrying its userId and role.
It uses MONGODB_URI, DATABASE_NAME and JWT_SECRET environment variables from .env
"""
import os
import sys
import argparse
from datetime import datetime, timezone, timedelta
from dotenv import load_dotenv
from pymongo import MongoClient, ReturnDocument

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.auth.jwt_handler import create_access_token

load_dotenv()

MONGODB_URI = os.getenv("MONGODB_URI", "mongodb://localhost:27017")
DB_NAME = os.getenv("DATABASE_NAME", "ca_prep")

parser = argparse.ArgumentParser()
parser.add_argument("--email", required=True, help="Email of the user")
parser.add_argument("--name", default="", help="Full name shown next to messages")
parser.add_argument("--admin", action="store_true", help="Give the user role=admin")
parser.add_argument("--days", type=int, default=1, help="Token lifetime in days")
args = parser.parse_args()

client = MongoClient(MONGODB_URI)
users = client[DB_NAME]["users"]

role = "admin" if args.admin else "user"
update = {"$set": {"role": role}, "$setOnInsert": {"createdAt": datetime.now(timezone.utc)}}
if args.name:
    update["$set"]["fullName"] = args.name

user = users.find_one_and_update(
    {"email": args.email.lower()},
    update,
    upsert=True,
    return_document=ReturnDocument.AFTER,
)
print(f"User {args.email} ({user['_id']}) role={role}")
print(create_access_token(str(user["_id"]), role, timedelta(days=args.days)))

client.close()
