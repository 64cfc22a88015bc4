from __future__ import annotations

import logging
from typing import Any

import requests
from requests.adapters import HTTPAdapter
from urllib3.util import Retry

from config import config
from domain.ledger import WalletAddress
from domain.transfers import NativeTransferRow, TokenTransferRow
from errors import NetworkError, ProviderError

logger = logging.getLogger(__name__)

PROVIDER = "Etherscan"
NO_TRANSACTIONS_MESSAGE = "no transactions found"
# Etherscan rejects page requests with page * offset above this.
MAX_RESULT_WINDOW = 10_000


class EtherscanClient:
    # https://docs.etherscan.io/api-reference/endpoint/tokentx
    # https://docs.etherscan.io/api-reference/endpoint/txlist
    def __init__(
        self,
        *,
        api_key: str = "",
        base_url: str = "https://api.etherscan.io/v2/api",
        chain_id: int = 1,
        page_size: int = 10_000,
        timeout: float = 5.0,
        session: requests.Session | None = None,
        retry_attempts: int = 3,
        retry_backoff_seconds: float = 1,
    ) -> None:
        if page_size <= 0:
            raise ValueError("page_size must be > 0")

        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.chain_id = chain_id
        self.page_size = page_size
        self.timeout = timeout
        self._session = session or requests.Session()

        retry = Retry(
            total=retry_attempts,
            backoff_factor=retry_backoff_seconds,
            status_forcelist={429},
            allowed_methods={"GET"},
        )
        adapter = HTTPAdapter(max_retries=retry)
        self._session.mount("https://", adapter)
        self._session.mount("http://", adapter)

    def list_token_transfers(self, wallet: WalletAddress | str) -> list[TokenTransferRow]:
        rows = self._fetch_all("tokentx", wallet)
        return [TokenTransferRow.model_validate(row) for row in rows]

    def list_native_transfers(self, wallet: WalletAddress | str) -> list[NativeTransferRow]:
        rows = self._fetch_all("txlist", wallet)
        return [NativeTransferRow.model_validate(row) for row in rows]

    def _fetch_all(self, action: str, wallet: str) -> list[dict[str, Any]]:
        aggregated: list[dict[str, Any]] = []
        page = 1
        while True:
            batch = self._fetch_page(action, wallet, page)
            aggregated.extend(batch)
            logger.info(
                "Fetched %s page=%d size=%d total=%d address=%s",
                action,
                page,
                len(batch),
                len(aggregated),
                wallet,
            )
            if len(batch) < self.page_size:
                return aggregated
            if page * self.page_size >= MAX_RESULT_WINDOW:
                logger.warning(
                    "Result window of %d rows reached for %s address=%s; later rows are not fetched",
                    MAX_RESULT_WINDOW,
                    action,
                    wallet,
                )
                return aggregated
            page += 1

    def _fetch_page(self, action: str, wallet: str, page: int) -> list[dict[str, Any]]:
        params: dict[str, Any] = {
            "chainid": self.chain_id,
            "module": "account",
            "action": action,
            "address": wallet.strip(),
            "page": page,
            "offset": self.page_size,
            "sort": "asc",
        }
        if self.api_key:
            params["apikey"] = self.api_key

        payload = self._request(params)
        result = payload.get("result")
        if str(payload.get("status")) == "1" and isinstance(result, list):
            return [row for row in result if isinstance(row, dict)]

        message = str(payload.get("message") or "")
        if isinstance(result, list) and NO_TRANSACTIONS_MESSAGE in message.lower():
            return []
        detail = result if isinstance(result, str) and result else message or "Unknown error"
        raise ProviderError(detail, provider=PROVIDER, payload=payload)

    def _request(self, params: dict[str, Any]) -> dict[str, Any]:
        try:
            response = self._session.request("GET", self.base_url, params=params, timeout=self.timeout)
            response.raise_for_status()
        except requests.HTTPError as exc:
            status_code = getattr(exc.response, "status_code", None)
            raise NetworkError(f"Etherscan {params['action']}: {status_code}", status_code=status_code) from exc
        except requests.RequestException as exc:
            raise NetworkError(f"Etherscan {params['action']} request failed") from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise NetworkError("Etherscan returned invalid JSON", payload=response.text) from exc

        if not isinstance(payload, dict):
            raise NetworkError("Etherscan returned unexpected payload type", payload=payload)
        return payload


def build_default_client() -> EtherscanClient:
    settings = config()
    return EtherscanClient(
        api_key=settings.etherscan_api_key,
        base_url=settings.etherscan_base_url,
        chain_id=settings.chain_id,
        page_size=settings.etherscan_page_size,
        timeout=settings.request_timeout_seconds,
    )


__all__ = ["EtherscanClient", "build_default_client"]
