from sqlmodel import SQLModel
from arbitration import config, models  # noqa: F401  (registers tables)
from arbitration.main import engine


def init_db():
    print(f"Creating tables in {config.DATABASE_URL} ...")
    SQLModel.metadata.create_all(engine)
    print("✅ Done.")


if __name__ == "__main__":
    init_db()
