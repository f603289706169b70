from sqlalchemy.orm import declarative_base

# Models import Base from here so the schema bootstrapper can see their tables
Base = declarative_base()
