#!/usr/bin/env python3
"""
Bulk Email Check (async): send addresses to a check-if-email-exists HTTP backend with bounded
concurrency, linear-backoff retries, a health gate and a JSON summary.

INPUT   --in file (JSON input document, JSON array, CSV with an "email" column, or one address per line)
        and/or repeated --email flags.
OUTPUT  JSON Lines, one record per address:  {"email", ...backend fields..., "attempts"}
                                      or:  {"email", "error", "attempts"}
        plus a JSON summary (defaults to <out>.summary.json).

QUICK START
    pip install aiohttp
    python bulk_email_check.py --in emails.txt --out results.jsonl \
        --backend-url http://localhost:8080 --concurrency 5 --retries 2 --timeout 60

DIRECT RUN EXAMPLE
    python bulk_email_check.py --in input.json --out results.jsonl \
        --from-email bounce@yourcompany.com --hello-name yourcompany.com \
        --proxy-host proxy.example.com --proxy-port 1080 \
        --concurrency 10 --retries 3 --retry-backoff 2 --progress-every 100


KEY FLAGS
    --backend-url                   Base URL of the verification backend (falls back to $BACKEND_URL).
    --concurrency                   Max requests in flight at once (1-50, default 5).
    --retries                       Retries after the first attempt (0-5, default 2).
    --timeout                       Per-attempt deadline in seconds (1-300, default 60).
    --retry-backoff                 Base seconds for linear retry backoff (wait = base * attempt).
    --health-probes / --health-interval / --health-timeout
                                    How long to wait for GET /health before giving up.
    --skip-health-check             Start sending requests straight away.
    --progress-every                Emit progress totals every N results (0 disables).

Notes & Caveats:
- The actual SMTP/MX/syntax work happens in the backend. This script only schedules requests,
  retries them and records what came back.
- Every error is retried, including 4xx responses, until the attempt cap is hit.
- Results are appended to the output file as soon as each address finishes, so a crash mid-run
  keeps everything written so far. Nothing is resumed between runs.
- The proxy flags are forwarded to the backend in the request body; they do not proxy this
  script's own HTTP traffic.
"""

import argparse
import asyncio
import csv
import json
import os
from collections import deque
from dataclasses import dataclass, field
from email.utils import parseaddr
from typing import Any, Awaitable, Callable, Iterable, Optional, Tuple
from urllib.parse import urlsplit

import aiohttp

CHECK_EMAIL_PATH = "/v0/check_email"
HEALTH_PATH = "/health"
BACKEND_URL_ENV = "BACKEND_URL"
DEFAULT_BACKEND_URL = "http://localhost:8080"

# Inclusive bounds enforced by build_config
CONCURRENCY_RANGE = (1, 50)
RETRY_COUNT_RANGE = (0, 5)
TIMEOUT_RANGE = (1, 300)
RETRY_BACKOFF_RANGE = (0.0, 60.0)
HEALTH_PROBES_RANGE = (1, 60)

DEFAULT_CONCURRENCY = 5
DEFAULT_RETRY_COUNT = 2
DEFAULT_TIMEOUT = 60
DEFAULT_RETRY_BACKOFF = 1.0
DEFAULT_HEALTH_PROBES = 10
DEFAULT_HEALTH_INTERVAL = 3.0
DEFAULT_HEALTH_TIMEOUT = 5.0

# Field of the backend payload used to bucket results in the summary
CLASSIFICATION_FIELD = "is_reachable"


class VerifierError(Exception):
    """Base class for errors raised by this tool."""


class ConfigurationError(VerifierError):
    pass


class BackendUnavailable(VerifierError):
    pass


class CheckError(VerifierError):
    """One backend call failed."""


class TransportFailure(CheckError):
    pass


class RequestTimeout(CheckError):
    pass


class BackendError(CheckError):
    def __init__(self, status: int, body: str, detail: str = "") -> None:
        message = f"Backend responded with status {status}"
        if detail:
            message += f" {detail}"
        super().__init__(f"{message}: {body}")
        self.status = status
        self.body = body


class ExhaustedRetries(VerifierError):
    def __init__(self, exc: Exception, attempts: int, history: list[str]) -> None:
        super().__init__(str(exc))
        self.exc = exc
        self.attempts = attempts
        self.history = history


@dataclass(frozen=True)
class ProxyConfig:
    host: str
    port: int
    username: Optional[str] = None
    password: Optional[str] = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"host": self.host, "port": self.port}
        if self.username is not None:
            payload["username"] = self.username
        if self.password is not None:
            payload["password"] = self.password
        return payload


@dataclass(frozen=True)
class WorkItem:
    email: str             # identifier as supplied (trimmed); reported back in every record
    to_email: str          # normalized address sent to the backend
    from_email: Optional[str] = None
    hello_name: Optional[str] = None
    proxy: Optional[ProxyConfig] = None

    def request_body(self) -> dict[str, Any]:
        body: dict[str, Any] = {"to_email": self.to_email}
        if self.from_email:
            body["from_email"] = self.from_email
        if self.hello_name:
            body["hello_name"] = self.hello_name
        if self.proxy is not None:
            body["proxy"] = self.proxy.to_payload()
        return body


@dataclass
class ItemResult:
    email: str
    attempts: int
    payload: Optional[dict[str, Any]] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def classification(self) -> Optional[str]:
        if not self.payload:
            return None
        value = self.payload.get(CLASSIFICATION_FIELD)
        if isinstance(value, str) and value:
            return value
        return None

    def to_record(self) -> dict[str, Any]:
        record: dict[str, Any] = {"email": self.email}
        if self.ok:
            record.update(self.payload or {})
        else:
            record["error"] = self.error
        record["attempts"] = self.attempts
        return record


@dataclass
class RunSummary:
    total: int = 0
    successful: int = 0
    failed: int = 0
    by_classification: dict[str, int] = field(default_factory=dict)

    def add(self, result: ItemResult) -> None:
        self.total += 1
        if not result.ok:
            self.failed += 1
            return
        self.successful += 1
        classification = result.classification
        if classification is not None:
            self.by_classification[classification] = self.by_classification.get(classification, 0) + 1

    def to_dict(self) -> dict[str, int]:
        """Totals plus one key per classification.

        A classification named like a total ("failed", ...) is written as "is_reachable:<name>".
        """
        data = {"total": self.total, "successful": self.successful, "failed": self.failed}
        for name in sorted(self.by_classification):
            key = name if name not in data else f"{CLASSIFICATION_FIELD}:{name}"
            data[key] = self.by_classification[name]
        return data


@dataclass
class RunConfig:
    emails: list[str]
    backend_url: str
    proxy: Optional[ProxyConfig] = None
    from_email: Optional[str] = None
    hello_name: Optional[str] = None
    concurrency: int = DEFAULT_CONCURRENCY
    retry_count: int = DEFAULT_RETRY_COUNT
    timeout: float = DEFAULT_TIMEOUT
    retry_backoff: float = DEFAULT_RETRY_BACKOFF
    health_probes: int = DEFAULT_HEALTH_PROBES
    health_interval: float = DEFAULT_HEALTH_INTERVAL
    health_timeout: float = DEFAULT_HEALTH_TIMEOUT
    skip_health_check: bool = False

    @property
    def max_attempts(self) -> int:
        return self.retry_count + 1


def normalize_email(addr: str) -> str:
    addr = (addr or "").strip()
    name, email = parseaddr(addr)
    return (email or addr).lower()


def _check_range(name: str, value, bounds: Tuple[float, float]):
    low, high = bounds
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(f'"{name}" must be a number, got {value!r}')
    if not low <= value <= high:
        raise ConfigurationError(f'"{name}" must be between {low} and {high}, got {value}')
    return value


def _optional_str(name: str, value) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ConfigurationError(f'"{name}" must be a string, got {value!r}')
    return value.strip() or None


def parse_proxy(data: Optional[dict[str, Any]]) -> Optional[ProxyConfig]:
    if not data:
        return None
    if not isinstance(data, dict):
        raise ConfigurationError('"proxy" must be an object with "host" and "port"')
    host = str(data.get("host") or "").strip()
    if not host:
        raise ConfigurationError('The "proxy.host" field is required when a proxy is given.')
    try:
        port = int(data.get("port"))
    except (TypeError, ValueError):
        raise ConfigurationError(f'"proxy.port" must be an integer, got {data.get("port")!r}')
    _check_range("proxy.port", port, (1, 65535))
    return ProxyConfig(
        host=host,
        port=port,
        username=_optional_str("proxy.username", data.get("username")),
        password=_optional_str("proxy.password", data.get("password")),
    )


def build_config(
    emails: Optional[Iterable[str]],
    backend_url: Optional[str],
    proxy: Optional[ProxyConfig] = None,
    from_email: Optional[str] = None,
    hello_name: Optional[str] = None,
    concurrency: int = DEFAULT_CONCURRENCY,
    retry_count: int = DEFAULT_RETRY_COUNT,
    timeout: float = DEFAULT_TIMEOUT,
    retry_backoff: float = DEFAULT_RETRY_BACKOFF,
    health_probes: int = DEFAULT_HEALTH_PROBES,
    health_interval: float = DEFAULT_HEALTH_INTERVAL,
    health_timeout: float = DEFAULT_HEALTH_TIMEOUT,
    skip_health_check: bool = False,
) -> RunConfig:
    """Validate raw settings and return a RunConfig, or raise ConfigurationError."""
    if emails is None or isinstance(emails, str):
        raise ConfigurationError('The "emails" field must be a non-empty array of email strings.')
    cleaned: list[str] = []
    for raw in emails:
        if not isinstance(raw, str):
            raise ConfigurationError(f'Every entry in "emails" must be a string, got {raw!r}')
        email = raw.strip()
        if email:
            cleaned.append(email)
    if not cleaned:
        raise ConfigurationError('The "emails" field must be a non-empty array of email strings.')

    backend_url = _optional_str("backendUrl", backend_url)
    if not backend_url:
        raise ConfigurationError('The "backendUrl" field is required in the input.')
    parts = urlsplit(backend_url)
    if parts.scheme not in {"http", "https"} or not parts.netloc:
        raise ConfigurationError(f'"backendUrl" must be an http(s) URL, got {backend_url!r}')

    _check_range("concurrency", concurrency, CONCURRENCY_RANGE)
    _check_range("retries", retry_count, RETRY_COUNT_RANGE)
    _check_range("timeout", timeout, TIMEOUT_RANGE)
    _check_range("retry_backoff", retry_backoff, RETRY_BACKOFF_RANGE)
    _check_range("health_probes", health_probes, HEALTH_PROBES_RANGE)
    _check_range("health_interval", health_interval, (0.0, 300.0))
    _check_range("health_timeout", health_timeout, (0.1, 300.0))
    if not isinstance(concurrency, int) or not isinstance(retry_count, int) or not isinstance(health_probes, int):
        raise ConfigurationError('"concurrency", "retries" and "health_probes" must be integers')

    return RunConfig(
        emails=cleaned,
        backend_url=backend_url.rstrip("/"),
        proxy=proxy,
        from_email=_optional_str("fromEmail", from_email),
        hello_name=_optional_str("helloName", hello_name),
        concurrency=concurrency,
        retry_count=retry_count,
        timeout=timeout,
        retry_backoff=retry_backoff,
        health_probes=health_probes,
        health_interval=health_interval,
        health_timeout=health_timeout,
        skip_health_check=skip_health_check,
    )


def make_work_items(config: RunConfig) -> list[WorkItem]:
    return [
        WorkItem(
            email=email,
            to_email=normalize_email(email),
            from_email=config.from_email,
            hello_name=config.hello_name,
            proxy=config.proxy,
        )
        for email in config.emails
    ]


class BackendClient:
    """Single-shot calls against the verification backend. No retries in here."""

    def __init__(self, session: aiohttp.ClientSession, backend_url: str) -> None:
        self.session = session
        self.backend_url = backend_url.rstrip("/")

    async def _request(self, method: str, path: str, timeout: float, **kwargs) -> Tuple[int, str, str]:
        url = self.backend_url + path
        try:
            async with self.session.request(
                method,
                url,
                timeout=aiohttp.ClientTimeout(total=timeout),
                **kwargs,
            ) as resp:
                text = await resp.text(errors="replace")
                return resp.status, resp.reason or "", text
        except asyncio.TimeoutError as exc:
            # ServerTimeoutError is also a ClientError; it must land here first
            raise RequestTimeout(f"{method} {url} timed out after {timeout}s") from exc
        except aiohttp.ClientError as exc:
            raise TransportFailure(f"{method} {url} failed: {exc.__class__.__name__}: {exc}") from exc

    async def check_one(self, item: WorkItem, timeout: float) -> dict[str, Any]:
        status, reason, text = await self._request(
            "POST",
            CHECK_EMAIL_PATH,
            timeout,
            json=item.request_body(),
        )
        if not 200 <= status < 300:
            raise BackendError(status, text, f'{reason} for "{item.to_email}"'.strip())
        try:
            payload = json.loads(text)
        except ValueError:
            raise BackendError(status, text, f'with invalid JSON for "{item.to_email}"')
        if not isinstance(payload, dict):
            raise BackendError(status, text, f'with a non-object payload for "{item.to_email}"')
        return payload

    async def check_health(self, timeout: float) -> None:
        status, reason, text = await self._request("GET", HEALTH_PATH, timeout)
        if not 200 <= status < 300:
            raise BackendError(status, text, reason)


async def with_retry(
    operation: Callable[[], Awaitable[Any]],
    attempts: int,
    backoff_base: float,
    label: str = "",
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> Tuple[Any, int]:
    """Run operation up to `attempts` times. Returns (value, attempts_used) or raises ExhaustedRetries.

    The wait after failed attempt k is backoff_base * k; there is no wait after the last attempt.
    """
    attempts = max(1, attempts)
    history: list[str] = []

    for attempt in range(1, attempts + 1):
        try:
            return await operation(), attempt
        except Exception as exc:
            history.append(f"exception:{exc.__class__.__name__}")
            if attempt >= attempts:
                raise ExhaustedRetries(exc, attempt, history) from exc
            delay = backoff_base * attempt
            print(
                f"[retry] {label} attempt {attempt}/{attempts} failed ({exc}); retrying in {delay:.2f}s",
                flush=True,
            )
            await sleep(delay)


async def wait_for_backend(
    client: BackendClient,
    probes: int,
    interval: float,
    probe_timeout: float,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> bool:
    probes = max(1, probes)
    for probe in range(1, probes + 1):
        try:
            await client.check_health(probe_timeout)
            print(f"[health] backend ready after {probe} probe(s)", flush=True)
            return True
        except CheckError as exc:
            print(f"[health] probe {probe}/{probes} failed: {exc}", flush=True)
        if probe < probes:
            await sleep(interval)
    return False


async def verify_item(item: WorkItem, client: BackendClient, config: RunConfig) -> ItemResult:
    try:
        payload, attempts = await with_retry(
            lambda: client.check_one(item, config.timeout),
            attempts=config.max_attempts,
            backoff_base=config.retry_backoff,
            label=f'"{item.email}"',
        )
    except ExhaustedRetries as e:
        print(f'[error] failed to verify "{item.email}" after {e.attempts} attempt(s): {e.exc}', flush=True)
        return ItemResult(item.email, e.attempts, error=str(e.exc))
    return ItemResult(item.email, attempts, payload=payload)


async def run_batch(
    items: Iterable[WorkItem],
    concurrency: int,
    operation: Callable[[WorkItem], Awaitable[ItemResult]],
    on_result: Optional[Callable[[ItemResult], None]] = None,
) -> list[ItemResult]:
    """Drain items through operation with at most `concurrency` in flight.

    Returns one ItemResult per item in completion order. on_result is called from this
    coroutine as each item finishes, so callers never see concurrent calls.
    """
    if concurrency < 1:
        raise ConfigurationError(f"concurrency must be at least 1, got {concurrency}")

    queue: deque[WorkItem] = deque(items)
    in_flight: dict[asyncio.Task, WorkItem] = {}
    results: list[ItemResult] = []

    try:
        while queue or in_flight:
            while queue and len(in_flight) < concurrency:
                item = queue.popleft()
                in_flight[asyncio.create_task(operation(item))] = item

            done, _ = await asyncio.wait(set(in_flight), return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                item = in_flight.pop(task)
                try:
                    result = task.result()
                except Exception as exc:
                    print(f'[error] unexpected failure for "{item.email}": {exc!r}', flush=True)
                    result = ItemResult(item.email, 1, error=f"{exc.__class__.__name__}: {exc}")
                results.append(result)
                if on_result is not None:
                    on_result(result)
    finally:
        for task in in_flight:
            task.cancel()
        if in_flight:
            await asyncio.gather(*in_flight, return_exceptions=True)

    return results


def summarize(results: Iterable[ItemResult]) -> RunSummary:
    summary = RunSummary()
    for result in results:
        summary.add(result)
    return summary


class JsonlResultSink:
    """Append-only JSON Lines file, flushed after every record.

    The file is created on the first write, so a run that never gets past the
    health gate leaves no output file behind.
    """

    def __init__(self, path: str) -> None:
        self.path = path
        self._fh = None
        self._active = False

    def __enter__(self) -> "JsonlResultSink":
        self._active = True
        return self

    def __exit__(self, *exc_info) -> None:
        self._active = False
        if self._fh is not None:
            self._fh.close()
            self._fh = None

    def write(self, result: ItemResult) -> None:
        if not self._active:
            raise RuntimeError("JsonlResultSink used outside of its context manager")
        if self._fh is None:
            self._fh = open(self.path, "w", encoding="utf-8")
        self._fh.write(json.dumps(result.to_record(), ensure_ascii=False) + "\n")
        self._fh.flush()


class ListResultSink:
    def __init__(self) -> None:
        self.records: list[dict[str, Any]] = []

    def write(self, result: ItemResult) -> None:
        self.records.append(result.to_record())


class ProgressReporter:
    def __init__(self, every: int) -> None:
        self.every = max(0, every)
        self.counters = RunSummary()

    def add(self, result: ItemResult) -> None:
        self.counters.add(result)
        if self.every and self.counters.total % self.every == 0:
            counts = " ".join(f"{k}={v}" for k, v in self.counters.to_dict().items() if k != "total")
            print(f"[progress] processed={self.counters.total} {counts}", flush=True)


async def run_async(config: RunConfig, sink, progress_every: int = 0) -> RunSummary:
    items = make_work_items(config)
    print(
        f'[start] verifying {len(items)} email(s) using backend "{config.backend_url}" '
        f"(concurrency={config.concurrency}, attempts={config.max_attempts}, timeout={config.timeout}s)",
        flush=True,
    )

    connector = aiohttp.TCPConnector(limit=config.concurrency)
    async with aiohttp.ClientSession(connector=connector) as session:
        client = BackendClient(session, config.backend_url)

        if not config.skip_health_check:
            ready = await wait_for_backend(
                client,
                config.health_probes,
                config.health_interval,
                config.health_timeout,
            )
            if not ready:
                raise BackendUnavailable(
                    f'Backend "{config.backend_url}" did not become healthy after {config.health_probes} probe(s)'
                )

        progress = ProgressReporter(progress_every)

        def emit(result: ItemResult) -> None:
            sink.write(result)
            progress.add(result)

        results = await run_batch(
            items,
            config.concurrency,
            lambda item: verify_item(item, client, config),
            on_result=emit,
        )

    return summarize(results)


def load_input_file(path: str) -> Tuple[list[str], dict[str, Any]]:
    """Read addresses from a JSON, CSV or plain-text file.

    Returns (emails, document); document holds the other keys of a JSON input object
    ("backendUrl", "proxy", ...) and is empty for every other format.
    """
    try:
        with open(path, newline="", encoding="utf-8") as fh:
            if path.lower().endswith(".json"):
                try:
                    data = json.load(fh)
                except ValueError as exc:
                    raise ConfigurationError(f"Input file {path} is not valid JSON: {exc}")
                if isinstance(data, list):
                    return data, {}
                if not isinstance(data, dict):
                    raise ConfigurationError(f"Input file {path} must hold a JSON object or array")
                emails = data.get("emails")
                if not isinstance(emails, list):
                    raise ConfigurationError('The "emails" field must be a non-empty array of email strings.')
                return emails, data

            if path.lower().endswith(".csv"):
                reader = csv.DictReader(fh)
                column = next((c for c in ("email", "Email") if c in (reader.fieldnames or [])), None)
                if column is None:
                    raise ConfigurationError(f'Input CSV {path} has no "email" column')
                return [row.get(column) or "" for row in reader], {}

            return [line for line in fh if not line.lstrip().startswith("#")], {}
    except FileNotFoundError:
        raise ConfigurationError(f"Input file not found: {path}")


def resolve_backend_url(cli_value: Optional[str], document: dict[str, Any], environ=None) -> str:
    environ = os.environ if environ is None else environ
    return cli_value or document.get("backendUrl") or environ.get(BACKEND_URL_ENV) or DEFAULT_BACKEND_URL


def config_from_args(args) -> RunConfig:
    emails: list[str] = []
    document: dict[str, Any] = {}
    if args.in_path:
        emails, document = load_input_file(args.in_path)
    emails = list(emails) + list(args.emails or [])

    proxy_data = document.get("proxy") or {}
    if not isinstance(proxy_data, dict):
        raise ConfigurationError('"proxy" must be an object with "host" and "port"')
    proxy_data = dict(proxy_data)
    for key in ("host", "port", "username", "password"):
        value = getattr(args, f"proxy_{key}")
        if value is not None:
            proxy_data[key] = value

    return build_config(
        emails,
        resolve_backend_url(args.backend_url, document),
        proxy=parse_proxy(proxy_data),
        from_email=args.from_email or document.get("fromEmail"),
        hello_name=args.hello_name or document.get("helloName"),
        concurrency=args.concurrency,
        retry_count=args.retries,
        timeout=args.timeout,
        retry_backoff=args.retry_backoff,
        health_probes=args.health_probes,
        health_interval=args.health_interval,
        health_timeout=args.health_timeout,
        skip_health_check=args.skip_health_check,
    )


def write_summary(path: str, summary: RunSummary, config: RunConfig, in_path: Optional[str], out_path: str) -> None:
    summary_payload = {
        "input": os.path.abspath(in_path) if in_path else None,
        "output": os.path.abspath(out_path),
        "backend_url": config.backend_url,
        "summary": summary.to_dict(),
    }
    try:
        with open(path, "w", encoding="utf-8") as fh:
            json.dump(summary_payload, fh, indent=2)
        print(f"[summary] wrote {path}", flush=True)
    except OSError as exc:
        print(f"[summary] failed to write summary: {exc}", flush=True)


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Verify a list of email addresses against a check-if-email-exists backend.")
    ap.add_argument("--in", dest="in_path", default=None, help="Input file (.json, .csv with an email column, or one address per line)")
    ap.add_argument("--email", dest="emails", action="append", default=None, help="Address to verify (repeatable)")
    ap.add_argument("--out", dest="out_path", required=True, help="Output JSON Lines path")
    ap.add_argument("--summary", type=str, default=None, help="Path for JSON summary (defaults to <out>.summary.json)")
    ap.add_argument("--backend-url", default=None, help=f"Backend base URL (default: ${BACKEND_URL_ENV} or {DEFAULT_BACKEND_URL})")
    ap.add_argument("--proxy-host", default=None, help="SOCKS5 proxy host the backend should use")
    ap.add_argument("--proxy-port", type=int, default=None, help="Proxy port")
    ap.add_argument("--proxy-username", default=None, help="Proxy username")
    ap.add_argument("--proxy-password", default=None, help="Proxy password")
    ap.add_argument("--from-email", default=None, help="MAIL FROM address the backend should use")
    ap.add_argument("--hello-name", default=None, help="EHLO/HELO name the backend should use")
    ap.add_argument("--concurrency", type=int, default=DEFAULT_CONCURRENCY, help="Max requests in flight (1-50)")
    ap.add_argument("--retries", type=int, default=DEFAULT_RETRY_COUNT, help="Retries after the first attempt (0-5)")
    ap.add_argument("--timeout", type=float, default=DEFAULT_TIMEOUT, help="Per-attempt timeout in seconds (1-300)")
    ap.add_argument("--retry-backoff", type=float, default=DEFAULT_RETRY_BACKOFF, help="Base seconds for linear retry backoff")
    ap.add_argument("--health-probes", type=int, default=DEFAULT_HEALTH_PROBES, help="Max health probes before giving up")
    ap.add_argument("--health-interval", type=float, default=DEFAULT_HEALTH_INTERVAL, help="Seconds between health probes")
    ap.add_argument("--health-timeout", type=float, default=DEFAULT_HEALTH_TIMEOUT, help="Timeout per health probe in seconds")
    ap.add_argument("--skip-health-check", action="store_true", help="Do not wait for GET /health before starting")
    ap.add_argument("--progress-every", type=int, default=100, help="Print progress every N results (0 to disable)")
    return ap


def main(argv: Optional[list[str]] = None) -> None:
    args = build_parser().parse_args(argv)

    try:
        config = config_from_args(args)
    except ConfigurationError as exc:
        print(f"[error] {exc}", flush=True)
        raise SystemExit(2)

    try:
        with JsonlResultSink(args.out_path) as sink:
            summary = asyncio.run(run_async(config, sink, progress_every=args.progress_every))
    except BackendUnavailable as exc:
        print(f"[error] {exc}", flush=True)
        raise SystemExit(3)

    write_summary(args.summary or f"{args.out_path}.summary.json", summary, config, args.in_path, args.out_path)

    classes = " ".join(f"{name}={count}" for name, count in sorted(summary.by_classification.items()))
    print(
        f"Done. Total={summary.total} successful={summary.successful} failed={summary.failed} {classes}".rstrip(),
        flush=True,
    )


if __name__ == "__main__":
    main()
