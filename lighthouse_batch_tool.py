# /// script
# requires-python = ">=3.11"
# dependencies = [
#   "pandas",
#   "requests",
#   "rich",
# ]
# ///
"""Lighthouse Batch Audit CLI Tool.

Runs the Lighthouse CLI against a list of URLs in both mobile and desktop
mode, saving every JSON/HTML report into a timestamped run directory and
rolling the category scores up into one CSV summary per device.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import math
import os
import re
import shutil
import sys
import tomllib
from datetime import datetime
from pathlib import Path
from typing import Callable, NamedTuple
import xml.etree.ElementTree as ET

import pandas as pd
import requests
from rich.console import Console
from rich.table import Table

__version__ = "0.3.0"

out_console = Console(markup=False, highlight=False)
err_console = Console(stderr=True, markup=False, highlight=False)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_LIGHTHOUSE = "lighthouse"
LIGHTHOUSE_INSTALL_HINT = "npm i --location=global lighthouse"
CHROME_FLAGS = "--headless --disable-gpu"

DEFAULT_OUTPUT_DIR = "."
DEFAULT_TIMEOUT = 300.0
DEFAULT_TIMESTAMP_FORMAT = "minute"

RUN_DIR_PREFIX = "lighthouse-audit"
TIMESTAMP_FORMATS = {
    "minute": "%Y-%m-%d_%H-%M",
    "second": "%Y-%m-%dT%H-%M-%S%z",
}

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2

SCHEME_PREFIXES = ("https://", "http://")
SITEMAP_EXTENSION = ".xml"

# Report categories: (category_key, summary_field)
SCORE_CATEGORIES = [
    ("performance", "score_performance"),
    ("accessibility", "score_accessibility"),
    ("best-practices", "score_best_practices"),
    ("seo", "score_seo"),
    ("pwa", "score_pwa"),
]

# Summary CSV columns: summary_field -> header title
CSV_COLUMNS = {
    "url": "URL",
    "score_performance": "Performance Score",
    "score_accessibility": "Accessibility Score",
    "score_best_practices": "Best Practices Score",
    "score_seo": "SEO Score",
    "score_pwa": "PWA Score",
}

SITEMAP_NS = {"sm": "http://www.sitemaps.org/schemas/sitemap/0.9"}
SITEMAP_FETCH_TIMEOUT = 30
MAX_SITEMAP_DEPTH = 3

CONFIG_FILENAMES = ["lighthouse-batch.toml"]
CONFIG_SEARCH_PATHS = [
    Path.cwd(),
    Path.home() / ".config" / "lighthouse-batch",
]


class AuditVariant(NamedTuple):
    """One fixed Lighthouse configuration and the summary file it feeds."""

    name: str
    preset_flags: tuple[str, ...]
    csv_filename: str


MOBILE = AuditVariant("mobile", (), "lighthouse-scores.csv")
DESKTOP = AuditVariant("desktop", ("--preset=desktop",), "lighthouse-scores-desktop.csv")
AUDIT_VARIANTS = (MOBILE, DESKTOP)


class RunSettings(NamedTuple):
    """Per-run options resolved once before the URL loop starts."""

    run_dir: Path
    lighthouse_path: str = DEFAULT_LIGHTHOUSE
    timeout: float | None = DEFAULT_TIMEOUT
    skip_html: bool = False
    strip_www: bool = False
    parallel: bool = False
    verbose: bool = False


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class LighthouseError(Exception):
    """Raised when a single Lighthouse invocation fails."""


class ReportError(LighthouseError):
    """Raised when a Lighthouse report lacks a required category score."""


# ---------------------------------------------------------------------------
# Config & Profile
# ---------------------------------------------------------------------------


def discover_config_path() -> Path | None:
    """Find the first existing config file in search paths."""
    for search_dir in CONFIG_SEARCH_PATHS:
        for filename in CONFIG_FILENAMES:
            candidate = search_dir / filename
            if candidate.is_file():
                return candidate
    return None


def load_config(config_path: Path | None) -> dict:
    """Parse a TOML config file and return its contents as a dict."""
    if config_path is None:
        return {}
    try:
        with open(config_path, "rb") as fh:
            return tomllib.load(fh)
    except tomllib.TOMLDecodeError as exc:
        err_console.print(f"Error: malformed config file {config_path}: {exc}", style="red")
        sys.exit(EXIT_FAILURE)
    except OSError as exc:
        err_console.print(f"Error: cannot read config file {config_path}: {exc}", style="red")
        sys.exit(EXIT_FAILURE)


def apply_profile(args: argparse.Namespace, config: dict, profile_name: str | None) -> argparse.Namespace:
    """Merge config [settings] and optional profile into args.

    Resolution order (highest priority wins):
      1. Explicit CLI flags
      2. Profile values
      3. [settings] defaults from config
      4. Built-in defaults (already in args)
    """
    settings = config.get("settings", {})
    profile = {}
    if profile_name:
        profiles = config.get("profiles", {})
        if profile_name not in profiles:
            available = ", ".join(profiles.keys()) if profiles else "(none)"
            err_console.print(
                f"Error: profile '{profile_name}' not found in config. Available: {available}",
                style="red",
            )
            sys.exit(EXIT_FAILURE)
        profile = profiles[profile_name]

    config_key_map = {
        "urls_file": "file",
        "sitemap": "sitemap",
        "sitemap_limit": "sitemap_limit",
        "sitemap_filter": "sitemap_filter",
        "output_dir": "output_dir",
        "timeout": "timeout",
        "parallel": "parallel",
        "stream": "stream",
        "skip_html": "skip_html",
        "strip_www": "strip_www",
        "timestamp_format": "timestamp_format",
        "lighthouse_path": "lighthouse_path",
        "verbose": "verbose",
    }

    cli_explicit = set(getattr(args, "_explicit_args", []))

    for config_key, arg_dest in config_key_map.items():
        if arg_dest in cli_explicit:
            continue
        if config_key in profile:
            setattr(args, arg_dest, profile[config_key])
        elif config_key in settings:
            setattr(args, arg_dest, settings[config_key])

    if not getattr(args, "lighthouse_path", None):
        env_path = os.environ.get("LIGHTHOUSE_PATH")
        args.lighthouse_path = env_path or DEFAULT_LIGHTHOUSE

    return args


# ---------------------------------------------------------------------------
# CLI Argument Parser
# ---------------------------------------------------------------------------


class TrackingAction(argparse.Action):
    """Argparse action that records which flags were explicitly provided."""

    def __call__(self, parser, namespace, values, option_string=None):
        setattr(namespace, self.dest, values)
        explicit = getattr(namespace, "_explicit_args", [])
        explicit.append(self.dest)
        namespace._explicit_args = explicit


class TrackingStoreTrueAction(argparse.Action):
    """Like store_true but tracks that the flag was explicitly set."""

    def __init__(self, option_strings, dest, default=False, required=False, help=None):
        super().__init__(option_strings=option_strings, dest=dest, nargs=0, const=True, default=default, required=required, help=help)

    def __call__(self, parser, namespace, values, option_string=None):
        setattr(namespace, self.dest, True)
        explicit = getattr(namespace, "_explicit_args", [])
        explicit.append(self.dest)
        namespace._explicit_args = explicit


def build_argument_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="lighthouse-batch",
        description="Run Lighthouse mobile and desktop audits for a batch of URLs",
        usage="%(prog)s [options] [-f FILE] [url ...]",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("urls", nargs="*", default=[], help="URLs to audit")
    parser.add_argument("-f", "--file", dest="file", action=TrackingAction, default=None, help="File with one URL per line, or an .xml sitemap")
    parser.add_argument("--sitemap", dest="sitemap", action=TrackingAction, default=None, help="URL or local path to sitemap.xml")
    parser.add_argument("--sitemap-limit", dest="sitemap_limit", action=TrackingAction, type=int, default=None, help="Max URLs to extract from --sitemap")
    parser.add_argument("--sitemap-filter", dest="sitemap_filter", action=TrackingAction, default=None, help="Regex to filter --sitemap URLs")
    parser.add_argument("-o", "--output-dir", dest="output_dir", action=TrackingAction, default=DEFAULT_OUTPUT_DIR, help="Parent directory for the timestamped run directory")
    parser.add_argument("-t", "--timeout", dest="timeout", action=TrackingAction, type=float, default=DEFAULT_TIMEOUT, help="Seconds before a Lighthouse process is killed (0 = no limit)")
    parser.add_argument("--timestamp-format", dest="timestamp_format", action=TrackingAction, default=DEFAULT_TIMESTAMP_FORMAT, choices=tuple(TIMESTAMP_FORMATS), help="Run directory timestamp granularity")
    parser.add_argument("--parallel", dest="parallel", action=TrackingStoreTrueAction, default=False, help="Run the mobile and desktop audits of a URL concurrently")
    parser.add_argument("--stream", dest="stream", action=TrackingStoreTrueAction, default=False, help="Append summary rows after each URL instead of at the end")
    parser.add_argument("--skip-html", dest="skip_html", action=TrackingStoreTrueAction, default=False, help="Do not generate HTML reports")
    parser.add_argument("--strip-www", dest="strip_www", action=TrackingStoreTrueAction, default=False, help="Drop a leading 'www.' from report filenames")
    parser.add_argument("--lighthouse-path", dest="lighthouse_path", action=TrackingAction, default=None, help="Lighthouse executable (or set LIGHTHOUSE_PATH env var)")
    parser.add_argument("-c", "--config", dest="config", action=TrackingAction, default=None, help="Path to config TOML file")
    parser.add_argument("-p", "--profile", dest="profile", action=TrackingAction, default=None, help="Named profile from config file")
    parser.add_argument("-v", "--verbose", dest="verbose", action=TrackingStoreTrueAction, default=False, help="Verbose output to stderr")
    return parser


# ---------------------------------------------------------------------------
# URL Sources
# ---------------------------------------------------------------------------


def _fetch_sitemap_content(source: str) -> str:
    """Fetch sitemap XML from a URL or read from a local file path."""
    if source.startswith(SCHEME_PREFIXES):
        response = requests.get(source, timeout=SITEMAP_FETCH_TIMEOUT)
        response.raise_for_status()
        return response.text
    return Path(source).read_text()


def parse_sitemap_xml(xml_content: str, verbose: bool = False, _depth: int = 0) -> list[str]:
    """Parse sitemap XML and return the <loc> URLs in document order.

    Handles both <urlset> and <sitemapindex> root elements, with or without
    the sitemaps.org namespace. Child sitemaps of an index are fetched and
    parsed recursively up to MAX_SITEMAP_DEPTH. Malformed XML yields [].
    """
    if _depth >= MAX_SITEMAP_DEPTH:
        err_console.print(f"Warning: max sitemap depth ({MAX_SITEMAP_DEPTH}) reached, stopping recursion", style="yellow")
        return []

    try:
        root = ET.fromstring(xml_content)
    except ET.ParseError as exc:
        err_console.print(f"Error parsing XML: {exc}", style="red")
        return []

    root_tag = root.tag.split("}")[-1]

    if root_tag == "sitemapindex":
        urls: list[str] = []
        for child_url in _loc_texts(root, "sitemap"):
            if verbose:
                err_console.print(f"  Following child sitemap: {child_url}")
            try:
                child_content = _fetch_sitemap_content(child_url)
            except (requests.RequestException, OSError) as exc:
                err_console.print(f"Warning: failed to fetch child sitemap {child_url}: {exc}", style="yellow")
                continue
            urls.extend(parse_sitemap_xml(child_content, verbose, _depth + 1))
        return urls

    return _loc_texts(root, "url")


def _loc_texts(root: ET.Element, entry_tag: str) -> list[str]:
    loc_elements = root.findall(f"sm:{entry_tag}/sm:loc", SITEMAP_NS)
    if not loc_elements:
        loc_elements = root.findall(f"{entry_tag}/loc")
    texts = []
    for loc_elem in loc_elements:
        text = loc_elem.text.strip() if loc_elem.text else ""
        if text:
            texts.append(text)
    return texts


def fetch_sitemap_urls(
    source: str,
    limit: int | None = None,
    filter_pattern: str | None = None,
    verbose: bool = False,
) -> list[str]:
    """Fetch and filter URLs from a sitemap XML source.

    Args:
        source: URL or local file path to a sitemap.xml.
        limit: Maximum number of URLs to return.
        filter_pattern: Regex pattern to filter URLs (keeps matches).
        verbose: Print progress to stderr.
    """
    try:
        if verbose:
            err_console.print(f"  Fetching sitemap: {source}")
        xml_content = _fetch_sitemap_content(source)
    except (requests.RequestException, OSError) as exc:
        err_console.print(f"Warning: failed to fetch sitemap {source}: {exc}", style="yellow")
        return []
    urls = parse_sitemap_xml(xml_content, verbose)

    if filter_pattern:
        try:
            pattern = re.compile(filter_pattern)
        except re.error as exc:
            err_console.print(f"Error: invalid sitemap filter regex '{filter_pattern}': {exc}", style="red")
            return []
        urls = [u for u in urls if pattern.search(u)]

    if limit is not None and limit > 0:
        urls = urls[:limit]

    if verbose:
        err_console.print(f"  {len(urls)} URL(s) from sitemap")
    return urls


def read_url_file(file_path: str, verbose: bool = False) -> list[str]:
    """Read URLs from a plain-text list (one per line) or an .xml sitemap.

    Lines are stripped but blank lines are kept as empty strings so that
    positions in the file are preserved. Unreadable files yield [].
    """
    try:
        content = Path(file_path).read_text()
    except OSError as exc:
        err_console.print(f"Error opening file {file_path}: {exc}", style="red")
        return []

    if file_path.lower().endswith(SITEMAP_EXTENSION):
        return parse_sitemap_xml(content, verbose)
    return [line.strip() for line in content.splitlines()]


def load_urls(
    url_args: list[str],
    file_path: str | None,
    sitemap: str | None = None,
    sitemap_limit: int | None = None,
    sitemap_filter: str | None = None,
    verbose: bool = False,
) -> list[str]:
    """Resolve the ordered URL list from a file, a sitemap and/or positional args.

    A URL file takes precedence over everything else. Otherwise sitemap URLs
    come first, followed by positional URLs. Duplicates are kept.
    """
    if file_path:
        return read_url_file(file_path, verbose)

    urls: list[str] = []
    if sitemap:
        urls.extend(fetch_sitemap_urls(sitemap, sitemap_limit, sitemap_filter, verbose))
    urls.extend(url_args)
    return urls


# ---------------------------------------------------------------------------
# Lighthouse Invocation
# ---------------------------------------------------------------------------


def is_lighthouse_installed(executable: str = DEFAULT_LIGHTHOUSE) -> bool:
    """Check whether the Lighthouse executable can be found on PATH."""
    return shutil.which(executable) is not None


def build_lighthouse_command(
    executable: str,
    url: str,
    variant: AuditVariant,
    output_format: str,
    output_path: Path | None = None,
) -> list[str]:
    """Build the argv for one Lighthouse run."""
    command = [executable, url, *variant.preset_flags, f"--output={output_format}"]
    if output_path is not None:
        command.append(f"--output-path={output_path}")
    command.append(f"--chrome-flags={CHROME_FLAGS}")
    return command


async def run_lighthouse(command: list[str], timeout: float | None = DEFAULT_TIMEOUT) -> bytes:
    """Spawn Lighthouse, wait for it to exit and return its stdout.

    The child is killed if it runs longer than ``timeout`` seconds.
    """
    try:
        process = await asyncio.create_subprocess_exec(
            *command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        raise LighthouseError(f"could not start {command[0]}: {exc}") from exc

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        raise LighthouseError(f"Lighthouse timed out after {timeout:g}s") from None

    if process.returncode != 0:
        message = f"Lighthouse process exited with code {process.returncode}"
        stderr_lines = stderr.decode(errors="replace").strip().splitlines() if stderr else []
        if stderr_lines:
            message += f": {stderr_lines[-1]}"
        raise LighthouseError(message)
    return stdout


async def run_lighthouse_json(
    url: str,
    variant: AuditVariant,
    executable: str = DEFAULT_LIGHTHOUSE,
    timeout: float | None = DEFAULT_TIMEOUT,
) -> dict:
    """Run Lighthouse with JSON output captured from stdout and return the report."""
    if not url:
        raise LighthouseError("empty URL")
    command = build_lighthouse_command(executable, url, variant, "json")
    stdout = await run_lighthouse(command, timeout)
    try:
        report = json.loads(stdout)
    except ValueError as exc:
        raise LighthouseError(f"could not parse Lighthouse JSON output: {exc}") from exc
    if not isinstance(report, dict):
        raise LighthouseError("Lighthouse JSON output is not an object")
    return report


async def run_lighthouse_html(
    url: str,
    variant: AuditVariant,
    output_path: Path,
    executable: str = DEFAULT_LIGHTHOUSE,
    timeout: float | None = DEFAULT_TIMEOUT,
) -> Path:
    """Run Lighthouse writing an HTML report straight to ``output_path``."""
    if not url:
        raise LighthouseError("empty URL")
    command = build_lighthouse_command(executable, url, variant, "html", output_path)
    await run_lighthouse(command, timeout)
    return output_path


# ---------------------------------------------------------------------------
# Report Artifacts
# ---------------------------------------------------------------------------


def filename_for(url: str, variant: str, extension: str, strip_www: bool = False) -> str:
    """Derive a filesystem-safe report filename from a URL.

    Lowercases the URL, drops a leading http(s):// (and optionally www.),
    and replaces anything outside [a-z0-9] with an underscore. URLs that
    differ only in the dropped prefix map to the same name.
    """
    name = url.lower()
    for prefix in SCHEME_PREFIXES:
        if name.startswith(prefix):
            name = name[len(prefix):]
            break
    if strip_www and name.startswith("www."):
        name = name[len("www."):]
    name = re.sub(r"[^a-z0-9]", "_", name)
    return f"{name}_{variant}.{extension}"


def write_artifact(path: Path, data: str | bytes) -> Path:
    """Write report data to path, overwriting any existing file."""
    if isinstance(data, bytes):
        path.write_bytes(data)
    else:
        path.write_text(data)
    return path


def write_json_report(report: dict, run_dir: Path, url: str, variant: AuditVariant, strip_www: bool = False) -> Path:
    path = run_dir / filename_for(url, variant.name, "json", strip_www)
    return write_artifact(path, json.dumps(report, indent=2))


# ---------------------------------------------------------------------------
# Summary
# ---------------------------------------------------------------------------


def create_summary_record(report: dict, url: str | None = None) -> dict:
    """Reduce a Lighthouse report to its five category scores on a 0-100 scale.

    Raises ReportError when a category or its score is missing or is not a
    finite number in [0, 1], so a broken report never turns into a
    plausible-looking zero.
    """
    categories = report.get("categories")
    if not isinstance(categories, dict):
        raise ReportError("report has no categories")

    record: dict[str, object] = {"url": report.get("requestedUrl") or url}
    for category_key, field_name in SCORE_CATEGORIES:
        category = categories.get(category_key)
        score = category.get("score") if isinstance(category, dict) else None
        if isinstance(score, bool) or not isinstance(score, (int, float)):
            raise ReportError(f"report has no '{category_key}' score")
        if not math.isfinite(score) or not 0 <= score <= 1:
            raise ReportError(f"report has an out-of-range '{category_key}' score: {score!r}")
        record[field_name] = round(score * 100)
    return record


class SummaryCollector:
    """Summary records and failures of one run, kept per variant in URL order."""

    def __init__(self, variants: tuple[AuditVariant, ...] = AUDIT_VARIANTS):
        self.variants = variants
        self.records: dict[str, list[dict]] = {variant.name: [] for variant in variants}
        self.failures: list[dict] = []

    def add(self, variant: AuditVariant, record: dict) -> None:
        self.records[variant.name].append(record)

    def add_failure(self, url: str, variant: AuditVariant, error: Exception) -> None:
        self.failures.append({"url": url, "variant": variant.name, "error": str(error)})

    def records_for(self, variant: AuditVariant) -> list[dict]:
        return list(self.records[variant.name])


# ---------------------------------------------------------------------------
# Summary CSV
# ---------------------------------------------------------------------------


def _summary_dataframe(records: list[dict]) -> pd.DataFrame:
    dataframe = pd.DataFrame(records, columns=list(CSV_COLUMNS))
    return dataframe.rename(columns=CSV_COLUMNS)


def write_summary_csv(records: list[dict], output_path: Path) -> str:
    """Write the header and all summary rows, replacing any existing file."""
    _summary_dataframe(records).to_csv(output_path, index=False)
    return str(output_path)


def append_summary_record(record: dict, output_path: Path) -> str:
    """Append one summary row, writing the header first if the file is new."""
    write_header = not output_path.exists()
    _summary_dataframe([record]).to_csv(output_path, mode="a", header=write_header, index=False)
    return str(output_path)


def _persist(writer: Callable[[object, Path], str], data: object, output_path: Path) -> bool:
    """Run a summary writer, reporting (not raising) filesystem errors."""
    try:
        writer(data, output_path)
    except OSError as exc:
        err_console.print(f"Error: could not write summary {output_path}: {exc}", style="red")
        return False
    return True


# ---------------------------------------------------------------------------
# Run Coordination
# ---------------------------------------------------------------------------


def create_run_directory(
    output_dir: str | Path,
    timestamp_format: str = DEFAULT_TIMESTAMP_FORMAT,
    now: datetime | None = None,
) -> Path:
    """Create a fresh directory named after the run's start time.

    A numeric suffix is appended when a directory for the same timestamp
    already exists.
    """
    now = now or datetime.now().astimezone()
    stamp = now.strftime(TIMESTAMP_FORMATS[timestamp_format])
    base_name = re.sub(r"[^a-zA-Z0-9]", "_", f"{RUN_DIR_PREFIX}_{stamp}")

    parent = Path(output_dir)
    parent.mkdir(parents=True, exist_ok=True)
    run_dir = parent / base_name
    suffix = 2
    while True:
        try:
            run_dir.mkdir()
            return run_dir
        except FileExistsError:
            run_dir = parent / f"{base_name}_{suffix}"
            suffix += 1


async def audit_variant(url: str, variant: AuditVariant, settings: RunSettings) -> dict:
    """Audit one URL with one variant: save its reports and return its summary record."""
    if settings.verbose:
        err_console.print(f"  Running Lighthouse for {url} ({variant.name})...")
    report = await run_lighthouse_json(url, variant, settings.lighthouse_path, settings.timeout)
    write_json_report(report, settings.run_dir, url, variant, settings.strip_www)
    if not settings.skip_html:
        html_path = settings.run_dir / filename_for(url, variant.name, "html", settings.strip_www)
        await run_lighthouse_html(url, variant, html_path, settings.lighthouse_path, settings.timeout)
    return create_summary_record(report, url)


async def audit_url(
    url: str,
    settings: RunSettings,
    variants: tuple[AuditVariant, ...] = AUDIT_VARIANTS,
) -> list[tuple[AuditVariant, dict | Exception]]:
    """Run every variant for one URL.

    Returns (variant, record-or-error) pairs in variant order, whether the
    variants ran one after another or concurrently.
    """

    async def guarded(variant: AuditVariant) -> dict | Exception:
        try:
            return await audit_variant(url, variant, settings)
        except (LighthouseError, OSError) as exc:
            return exc

    if settings.parallel:
        outcomes = await asyncio.gather(*(guarded(variant) for variant in variants))
    else:
        outcomes = [await guarded(variant) for variant in variants]
    return list(zip(variants, outcomes))


def _print_audit_summary(collector: SummaryCollector, csv_paths: dict[str, Path]) -> None:
    """Print a score table to stdout and per-device counts and failures to stderr."""
    table = Table(title="Lighthouse scores")
    table.add_column("Device")
    table.add_column("URL", overflow="fold")
    for title in list(CSV_COLUMNS.values())[1:]:
        table.add_column(title.replace(" Score", ""), justify="right")

    for variant in collector.variants:
        for record in collector.records[variant.name]:
            table.add_row(variant.name, str(record["url"]), *(str(record[field]) for _, field in SCORE_CATEGORIES))
    if table.row_count:
        out_console.print(table)

    err_console.print("\nSummary:")
    for variant in collector.variants:
        scores = pd.Series([record["score_performance"] for record in collector.records[variant.name]], dtype=float)
        line = f"  {variant.name:<8} {len(scores)} audited"
        if len(scores) > 0:
            line += f", avg performance {scores.mean():.0f}"
        err_console.print(f"{line} -> {csv_paths[variant.name]}")

    if collector.failures:
        err_console.print(f"  Failures: {len(collector.failures)}", style="yellow")
        for failure in collector.failures:
            err_console.print(f"    {failure['url'] or '(empty URL)'} ({failure['variant']}): {failure['error']}")


async def run_audit(args: argparse.Namespace) -> int:
    """Run the whole batch and return the process exit status.

    Only a missing Lighthouse executable, an empty URL list or an unusable
    output directory fail the run; per-URL failures are reported and skipped.
    """
    lighthouse_path = getattr(args, "lighthouse_path", None) or DEFAULT_LIGHTHOUSE
    verbose = getattr(args, "verbose", False)

    if not is_lighthouse_installed(lighthouse_path):
        err_console.print(
            f"Error: the Lighthouse CLI ('{lighthouse_path}') does not seem to be installed. "
            f'Please run "{LIGHTHOUSE_INSTALL_HINT}" to install it globally.',
            style="red",
        )
        return EXIT_FAILURE

    urls = load_urls(
        getattr(args, "urls", []),
        getattr(args, "file", None),
        sitemap=getattr(args, "sitemap", None),
        sitemap_limit=getattr(args, "sitemap_limit", None),
        sitemap_filter=getattr(args, "sitemap_filter", None),
        verbose=verbose,
    )
    if not urls:
        err_console.print(build_argument_parser().format_usage().rstrip())
        err_console.print("Error: no URLs to audit.", style="red")
        return EXIT_USAGE

    try:
        run_dir = create_run_directory(
            getattr(args, "output_dir", DEFAULT_OUTPUT_DIR),
            getattr(args, "timestamp_format", DEFAULT_TIMESTAMP_FORMAT),
        )
    except OSError as exc:
        err_console.print(f"Error: cannot create run directory: {exc}", style="red")
        return EXIT_FAILURE

    timeout = getattr(args, "timeout", DEFAULT_TIMEOUT)
    settings = RunSettings(
        run_dir=run_dir,
        lighthouse_path=lighthouse_path,
        timeout=timeout if timeout and timeout > 0 else None,
        skip_html=getattr(args, "skip_html", False),
        strip_www=getattr(args, "strip_www", False),
        parallel=getattr(args, "parallel", False),
        verbose=verbose,
    )
    stream = getattr(args, "stream", False)
    collector = SummaryCollector()
    csv_paths = {variant.name: run_dir / variant.csv_filename for variant in AUDIT_VARIANTS}

    err_console.print(f"Auditing {len(urls)} URL(s) into {run_dir}")
    for index, url in enumerate(urls, start=1):
        if verbose:
            err_console.print(f"[{index}/{len(urls)}] {url}")
        for variant, outcome in await audit_url(url, settings):
            if isinstance(outcome, Exception):
                err_console.print(f"Error running Lighthouse for {url} ({variant.name}): {outcome}", style="red")
                collector.add_failure(url, variant, outcome)
                continue
            collector.add(variant, outcome)
            if stream:
                _persist(append_summary_record, outcome, csv_paths[variant.name])
        err_console.print(f"{url} Audit Complete")

    for variant in AUDIT_VARIANTS:
        csv_path = csv_paths[variant.name]
        if not stream or not csv_path.exists():
            _persist(write_summary_csv, collector.records_for(variant), csv_path)

    _print_audit_summary(collector, csv_paths)
    err_console.print("Lighthouse audit complete for all URLs")
    return EXIT_OK


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------


def main() -> None:
    parser = build_argument_parser()
    args = parser.parse_args()

    config_path = Path(args.config) if args.config else discover_config_path()
    config = load_config(config_path)
    args = apply_profile(args, config, args.profile)

    if args.timestamp_format not in TIMESTAMP_FORMATS:
        err_console.print(
            f"Error: unknown timestamp_format '{args.timestamp_format}'. Use one of: {', '.join(TIMESTAMP_FORMATS)}",
            style="red",
        )
        sys.exit(EXIT_FAILURE)

    sys.exit(asyncio.run(run_audit(args)))


if __name__ == "__main__":
    main()
