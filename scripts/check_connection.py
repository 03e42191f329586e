"""
Check the MongoDB connection configured in coaching_backend/.env
Run from the repository root: python -m scripts.check_connection
"""
import asyncio

from coaching_backend.config import Settings
from coaching_backend.database import create_client


async def check_connection():
    settings = Settings.from_env()
    print(f"Testing connection to: {settings.mongo_url[:50]}...")
    print(f"Database name: {settings.db_name}")

    client = create_client(settings)
    try:
        await client.admin.command('ping')
        print("SUCCESS: MongoDB connection successful!")
        collections = await client[settings.db_name].list_collection_names()
        print(f"Collections in '{settings.db_name}': {collections}")
        return True
    except Exception as e:
        print(f"ERROR: Connection failed: {e}")
        print("\nTroubleshooting tips:")
        print("1. Check your MONGO_URL in .env file")
        print("2. Ensure the MongoDB network access list allows your IP")
        print("3. Verify username and password are correct")
        return False
    finally:
        client.close()


if __name__ == "__main__":
    asyncio.run(check_connection())
