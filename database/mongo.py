import motor.motor_asyncio
import os
from dotenv import load_dotenv

load_dotenv()

MONGODB_URI = os.getenv("MONGODB_URI", "mongodb://localhost:27017")
DB_NAME = os.getenv("DATABASE_NAME", "ca_prep")
MONGODB_TLS = os.getenv("MONGODB_TLS", "false").lower() == "true"

# ASYNC MongoDB client (Motor)
client = motor.motor_asyncio.AsyncIOMotorClient(
    MONGODB_URI,
    tls=MONGODB_TLS,
    serverSelectionTimeoutMS=30000,
)
db = client[DB_NAME]

# Core collections (ALL ASYNC)
users_collection = db["users"]
discussions_collection = db["discussions"]
