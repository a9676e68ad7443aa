from typing import Annotated

from fastapi import Depends
from sqlmodel import Session, SQLModel, create_engine

from .models import user
from .models import catalog
from .models import order
from .models import customer
from .models import notification
from .models import content
from .models import audit
from .models import contact
from .settings import get_settings

settings = get_settings()

connect_args = {}
if settings.db_url.startswith("sqlite"):
    connect_args = {"check_same_thread": False}

engine = create_engine(settings.db_url, echo=settings.db_echo, connect_args=connect_args)

def create_db_and_tables():
    SQLModel.metadata.create_all(engine)

def get_session():
    # Audit entries commit mid-request; loaded rows must stay readable afterwards
    with Session(engine, expire_on_commit=False) as session:
        yield session

DbSessionDep = Annotated[Session, Depends(get_session)]
