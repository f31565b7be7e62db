import asyncio
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlsplit

import httpx

import config
from errors import InternalError, UpstreamUnavailable
from logger import get_logger

logger = get_logger(__name__)

COUNTRIES_SOURCE = "REST Countries API"
RATES_SOURCE = "Exchange Rate API"


class ExternalDataClient:
    """Fetches the country catalog and the USD exchange-rate table.

    Both GETs run concurrently on one client and share the same timeout.
    Failures are classified, never retried: timeouts, connection errors and
    5xx answers become ``UpstreamUnavailable`` naming the source, anything
    else becomes ``InternalError``.
    """

    def __init__(
        self,
        countries_url: str = config.COUNTRY_API_URL,
        rates_url: str = config.EXCHANGE_RATE_API_URL,
        timeout: float = config.FETCH_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.countries_url = countries_url
        self.rates_url = rates_url
        self.timeout = timeout
        self._transport = transport

    def source_for(self, url) -> str:
        """Name the upstream a request URL belongs to."""
        target = urlsplit(str(url))
        for candidate, source in ((self.countries_url, COUNTRIES_SOURCE), (self.rates_url, RATES_SOURCE)):
            known = urlsplit(candidate)
            if (target.netloc, target.path) == (known.netloc, known.path):
                return source
        return target.netloc or str(url)

    async def fetch_all(self) -> Tuple[List[Dict[str, Any]], Dict[str, Any]]:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            tasks = [
                asyncio.create_task(self._get_json(client, self.countries_url)),
                asyncio.create_task(self._get_json(client, self.rates_url)),
            ]
            try:
                countries_data, rates_data = await asyncio.gather(*tasks)
            except BaseException:
                for task in tasks:
                    task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)
                raise

        if not isinstance(countries_data, list):
            logger.error("Country catalog payload is not a list")
            raise UpstreamUnavailable(COUNTRIES_SOURCE)
        rates = rates_data.get("rates") if isinstance(rates_data, dict) else None
        if not isinstance(rates, dict):
            logger.error("Exchange rate payload has no rates table")
            raise UpstreamUnavailable(RATES_SOURCE)

        logger.info("Fetched %d countries and %d exchange rates", len(countries_data), len(rates))
        return countries_data, rates

    async def _get_json(self, client: httpx.AsyncClient, url: str) -> Any:
        try:
            response = await client.get(url)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            source = self.source_for(e.request.url)
            if e.response.status_code >= 500:
                logger.error("%s answered %s", source, e.response.status_code)
                raise UpstreamUnavailable(source) from e
            logger.error("%s rejected the request with %s", source, e.response.status_code)
            raise InternalError(e) from e
        except (httpx.TimeoutException, httpx.TransportError) as e:
            source = self.source_for(url)
            logger.error("Error fetching data from %s: %r", source, e)
            raise UpstreamUnavailable(source) from e
        except ValueError as e:
            logger.error("Undecodable JSON from %s", self.source_for(url))
            raise InternalError(e) from e
