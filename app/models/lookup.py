"""
Reference lists a profile can point at: countries, languages and gothrams.
"""

from sqlalchemy import Column, Integer, String

from app.models.base import Base, IntPKMixin, ModelMixin, TimestampMixin

LOOKUP_ACTIVE = 1
LOOKUP_INACTIVE = 0


class Country(Base, IntPKMixin, TimestampMixin, ModelMixin):
    __tablename__ = "countries"

    name = Column(String(100), unique=True, nullable=False)
    code = Column(String(8), unique=True, nullable=True, doc="ISO code such as IN")
    status = Column(Integer, nullable=False, default=LOOKUP_ACTIVE)


class Language(Base, IntPKMixin, TimestampMixin, ModelMixin):
    __tablename__ = "languages"

    name = Column(String(100), unique=True, nullable=False)
    code = Column(String(8), unique=True, nullable=True, doc="ISO 639 code such as ta")
    status = Column(Integer, nullable=False, default=LOOKUP_ACTIVE)


class Gothram(Base, IntPKMixin, TimestampMixin, ModelMixin):
    __tablename__ = "gothrams"

    name = Column(String(100), unique=True, nullable=False)
    status = Column(Integer, nullable=False, default=LOOKUP_ACTIVE)
