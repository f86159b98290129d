import importlib.util
import logging
from pathlib import Path
from core.migration_tracker import MigrationTracker

logger = logging.getLogger(__name__)

PLUGINS_DIR = Path(__file__).resolve().parent.parent / "plugins"


def _load_migration(plugin_name: str, mig_file: Path):
    # file names such as 1.0.0_init.py are not importable by dotted path
    spec = importlib.util.spec_from_file_location(f"plugins.{plugin_name}.migrations.m_{mig_file.stem}", mig_file)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


async def run_plugin_migrations(plugin_name: str, db, plugins_dir: Path = PLUGINS_DIR):
    """Run all pending migrations for a plugin."""
    tracker = MigrationTracker(db)
    plugin_dir = plugins_dir / plugin_name / "migrations"
    applied = {m["file"] for m in await tracker.get_applied(plugin_name)}

    for mig_file in sorted(plugin_dir.glob("*.py")):
        if mig_file.name in applied:
            continue  # skip already applied
        module = _load_migration(plugin_name, mig_file)
        if hasattr(module, "run"):
            logger.info(f"Applying {plugin_name}:{mig_file.name}")
            await module.run(db)
            await tracker.record_migration(plugin_name, mig_file.stem.split("_")[0], mig_file.name)
    logger.info(f"All migrations up to date for {plugin_name}.")


async def rollback_last_migration(plugin_name: str, db, plugins_dir: Path = PLUGINS_DIR):
    """Rollback the most recent migration for a plugin."""
    tracker = MigrationTracker(db)
    last = await tracker.get_last_applied(plugin_name)
    if not last:
        logger.warning(f"No migrations to rollback for {plugin_name}.")
        return

    file_name = last["file"]
    module = _load_migration(plugin_name, plugins_dir / plugin_name / "migrations" / file_name)
    if hasattr(module, "rollback"):
        logger.info(f"Rolling back {plugin_name}:{file_name}")
        await module.rollback(db)
        await tracker.mark_rollback(plugin_name, last["version"])
    else:
        logger.warning(f"Migration {file_name} has no rollback defined.")
