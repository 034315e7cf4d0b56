from tortoise import Tortoise
from settings import settings


def tortoise_config(db_url: str | None = None) -> dict:
    return {
        "connections": {"default": db_url or settings.db.url},
        "apps": {
            "models": {
                "models": ["orm.models"],
                "default_connection": "default",
            }
        },
        "use_tz": True,
        "timezone": "UTC",
    }


async def init_db(generate_schemas: bool = False, db_url: str | None = None) -> None:
    await Tortoise.init(config=tortoise_config(db_url))
    if generate_schemas:
        await Tortoise.generate_schemas()

async def close_db() -> None:
    await Tortoise.close_connections()
