from utils.date_helper import utcnow

MIGRATIONS_COLL = "_migrations"


class MigrationTracker:
    """Which plugin migration files have run, kept in ``_migrations``."""

    def __init__(self, db):
        self.db = db
        self.collection = db[MIGRATIONS_COLL]

    @staticmethod
    def _active(plugin):
        return {"plugin": plugin, "rolled_back": {"$ne": True}}

    async def record_migration(self, plugin, version, file_name):
        await self.collection.insert_one({
            "plugin": plugin,
            "version": version,
            "file": file_name,
            "applied_at": utcnow(),
        })

    async def mark_rollback(self, plugin, version):
        await self.collection.update_one(
            {**self._active(plugin), "version": version},
            {"$set": {"rolled_back": True, "rolled_back_at": utcnow()}},
        )

    async def get_applied(self, plugin):
        return await self.collection.find(self._active(plugin)).sort("applied_at", 1).to_list(None)

    async def get_last_applied(self, plugin):
        last = await self.collection.find(self._active(plugin)).sort("applied_at", -1).limit(1).to_list(1)
        return last[0] if last else None
