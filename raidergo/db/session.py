from motor.motor_asyncio import AsyncIOMotorClient
from raidergo.core.config import settings

# Collections used here: purchases (owned), notifications (written), users and courses (read-only)
client = AsyncIOMotorClient(
    settings.MONGO_URL,
    maxPoolSize=10,
    serverSelectionTimeoutMS=int(settings.PROVIDER_TIMEOUT_SECONDS * 1000),
    appname="raidergo-payments",
)
db = client[settings.DB_NAME]

def get_db():
    return db

def close_mongo_connection():
    client.close()
