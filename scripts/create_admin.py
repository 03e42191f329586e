"""
Create (or reset the password of) an admin account.
Run from the repository root: python -m scripts.create_admin <username> <email> <password>
"""
import sys

from pymongo import MongoClient

from coaching_backend.config import Settings
from coaching_backend.models import UserRecord
from coaching_backend.security import get_password_hash


def main(argv):
    if len(argv) != 3:
        print("Usage: python -m scripts.create_admin <username> <email> <password>")
        return 1
    username, email, password = argv[0].strip().lower(), argv[1].strip().lower(), argv[2]
    if len(password) < 6:
        print("ERROR: password must be at least 6 characters")
        return 1

    settings = Settings.from_env()
    client = MongoClient(settings.mongo_url, serverSelectionTimeoutMS=5000)
    db = client[settings.db_name]
    password_hash = get_password_hash(password)

    existing = db.users.find_one({"username": username}, {"_id": 0, "id": 1})
    if existing:
        db.users.update_one(
            {"id": existing["id"]},
            {"$set": {"password_hash": password_hash, "role": "admin", "is_active": True}},
        )
        print(f"Updated admin '{username}'")
    else:
        record = UserRecord(
            username=username,
            email=email,
            first_name="Sistem",
            last_name="Yöneticisi",
            role="admin",
        )
        doc = record.model_dump()
        doc["password_hash"] = password_hash
        db.users.insert_one(doc)
        print(f"Created admin '{username}'")
    client.close()
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
