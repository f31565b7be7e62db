from sqlalchemy import BigInteger, Column, DateTime, Float, Integer, String

from database import Base

# Mutable on every refresh; everything except the id and the name itself.
REFRESHED_FIELDS = (
    "capital",
    "region",
    "population",
    "currency_code",
    "exchange_rate",
    "estimated_gdp",
    "flag_url",
    "last_refreshed_at",
)


class Country(Base):
    __tablename__ = 'countries'

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(255), unique=True, nullable=False)
    # schemas.name_key(name); every name match goes through this column
    name_key = Column(String(255), unique=True, index=True, nullable=False)
    capital = Column(String(255), nullable=True)
    region = Column(String(100), index=True, nullable=True)
    population = Column(BigInteger, nullable=False)
    currency_code = Column(String(10), index=True, nullable=False)
    exchange_rate = Column(Float, nullable=True)
    estimated_gdp = Column(Float, nullable=True)
    flag_url = Column(String(512), nullable=True)
    last_refreshed_at = Column(DateTime(timezone=True), nullable=False)

    def __repr__(self):
        return f"<Country {self.name!r}>"
