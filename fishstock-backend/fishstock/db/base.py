import shortuuid
from sqlalchemy.orm import DeclarativeBase


def generate_shortuuid() -> str:
    return shortuuid.uuid()


class Base(DeclarativeBase):
    pass
