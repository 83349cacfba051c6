#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""directory_crawler.py

Dump the corporate directory of a Cisco IP phone deployment.

Two ways in, one way through:

TFTP mode
    fetch ``<hostname>.cnf.xml`` from the TFTP server and read its
    ``directoryURL``::

        directory_crawler.py --hostname SEP001122334455 --server 10.0.0.5

Web crawling mode
    scrape the ``directoryURL`` off the phone's own network configuration
    page::

        directory_crawler.py --phone 10.0.0.42

From the directory URL the crawler follows the CUCM XML services:
menu -> "Corporate Directory" -> search input -> directory pages, printing
every entry and following the "Next" soft key until there is none.

Environment variables (optional):

- PHONEDIR_REQUEST_TIMEOUT  seconds per HTTP request (default 30)
- PHONEDIR_USER_AGENT       User-Agent header
- PHONEDIR_DOWNLOAD_DIR     where the bootstrap file is stored (default ".")
- PHONEDIR_LOG_LEVEL        logging level (default INFO)
"""

import argparse
import json
import logging
import os
import re
import sys
from contextlib import ExitStack
from typing import Callable, Iterator, Optional, TextIO

import requests
import tftpy
from lxml import etree
from tqdm import tqdm
from urllib.parse import urljoin
from urllib3 import disable_warnings
from urllib3.exceptions import InsecureRequestWarning

import cisco_xml
from cisco_xml import DirectoryEntry, EntryPage

REQUEST_TIMEOUT = float(os.getenv("PHONEDIR_REQUEST_TIMEOUT", "30"))
HEADERS = {
    "User-Agent": os.getenv("PHONEDIR_USER_AGENT", "phonedir-crawler")
}
DOWNLOAD_DIR = os.getenv("PHONEDIR_DOWNLOAD_DIR", ".")
TFTP_PORT = 69

CORPORATE_DIRECTORY = "Corporate Directory"
NETWORK_CONFIG_PATH = "/NetworkConfiguration"
DIRECTORY_URL_RE = re.compile(r"[^\s<>\"']+/ccmcip/xmldirectory\.jsp")


def resolve_log_level(name: Optional[str]) -> int:
    """Map a level name such as ``"debug"`` to its number; unknown names give INFO."""
    level = logging.getLevelName((name or "INFO").upper())
    return level if isinstance(level, int) else logging.INFO


LOG_LEVEL = resolve_log_level(os.getenv("PHONEDIR_LOG_LEVEL"))

logging.basicConfig(
    format="%(asctime)s [%(levelname)s] %(message)s", level=LOG_LEVEL
)
logging.getLogger("tftpy").setLevel(logging.WARNING)

# Phones and CUCM nodes on internal networks present self-signed certificates.
disable_warnings(InsecureRequestWarning)


class DirectoryError(Exception):
    """Base class for every fatal crawl error."""


class ConfigurationError(DirectoryError):
    """Conflicting or missing mode inputs."""


class TransferError(DirectoryError):
    """A file or response body could not be retrieved completely."""


class NetworkError(DirectoryError):
    """An HTTP request failed: connection, timeout or non-success status."""


class DecodeError(DirectoryError):
    """A document is not well-formed XML."""


class NotFoundError(DirectoryError):
    """A well-formed document lacks the field needed for the next hop."""


Emitter = Callable[[EntryPage, DirectoryEntry], None]


class BaseCrawler:
    """Common HTTP helpers for crawlers."""

    def __init__(self, timeout: float = REQUEST_TIMEOUT) -> None:
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update(HEADERS)
        self.session.verify = False

    def fetch(self, url: str) -> bytes:
        """GET ``url`` without certificate checks and return the raw body."""
        logging.debug("GET %s", url)
        try:
            with self.session.get(
                url, timeout=self.timeout, verify=False, stream=True
            ) as resp:
                resp.raise_for_status()
                # unfollowed redirects and 304s carry no document
                if not 200 <= resp.status_code < 300:
                    raise NetworkError(f"GET {url} returned HTTP {resp.status_code}")
                try:
                    return resp.content
                except requests.RequestException as exc:
                    raise TransferError(f"Incomplete response from {url}: {exc}") from exc
        except requests.HTTPError as exc:
            status = getattr(exc.response, "status_code", "?")
            raise NetworkError(f"GET {url} returned HTTP {status}") from exc
        except requests.RequestException as exc:
            raise NetworkError(f"GET {url} failed: {exc}") from exc

    @staticmethod
    def decode(decoder, xml_bytes: bytes, source: str):
        """Run a ``cisco_xml`` decoder, naming ``source`` if the XML is broken."""
        try:
            return decoder(xml_bytes)
        except (etree.XMLSyntaxError, ValueError) as exc:
            raise DecodeError(f"Malformed XML from {source}: {exc}") from exc


class DirectoryCrawler(BaseCrawler):
    """Walks the CUCM XML services from a directory URL down to the entries."""

    def resolve_phone_config_url(self, phone: str) -> str:
        """Scrape the directory service URL off the phone's web server."""
        base = phone if phone.startswith(("http://", "https://")) else f"http://{phone}"
        config_url = base.rstrip("/") + NETWORK_CONFIG_PATH
        page = self.fetch(config_url).decode("utf-8", errors="ignore")
        match = DIRECTORY_URL_RE.search(page)
        if not match:
            raise NotFoundError(f"No directory URL found on {config_url}")
        logging.info("Directory URL from phone: %s", match.group(0))
        return match.group(0)

    def resolve_locale_directory_url(self, path: str) -> str:
        """Read ``directoryURL`` from a downloaded bootstrap file."""
        try:
            with open(path, "rb") as fh:
                xml_bytes = fh.read()
        except OSError as exc:
            raise TransferError(f"Can't read bootstrap file {path}: {exc}") from exc
        pointer = self.decode(cisco_xml.decode_bootstrap, xml_bytes, path)
        if not pointer.directory_url:
            raise NotFoundError(f"No directoryURL in {path}")
        logging.info("Directory URL from %s: %s", path, pointer.directory_url)
        return pointer.directory_url

    def resolve_input_directory_url(self, url: str) -> str:
        """Find the "Corporate Directory" item of the directory menu."""
        menu = self.decode(cisco_xml.decode_menu, self.fetch(url), url)
        item = menu.find(CORPORATE_DIRECTORY)
        if item is None or not item.url:
            raise NotFoundError(f"No '{CORPORATE_DIRECTORY}' menu item at {url}")
        input_url = urljoin(url, item.url)
        logging.info("Corporate directory input: %s", input_url)
        return input_url

    def resolve_listing_url(self, url: str) -> str:
        pointer = self.decode(cisco_xml.decode_list_pointer, self.fetch(url), url)
        if not pointer.url:
            raise NotFoundError(f"No directory list URL at {url}")
        listing_url = urljoin(url, pointer.url)
        logging.info("Corporate directory listing: %s", listing_url)
        return listing_url

    def fetch_page(self, url: str) -> EntryPage:
        """Fetch one directory page; entries and soft keys are decoded separately."""
        body = self.fetch(url)
        entries = self.decode(cisco_xml.decode_entries, body, url)
        soft_keys = self.decode(cisco_xml.decode_soft_keys, body, url)
        next_url = cisco_xml.next_page_url(soft_keys)
        return EntryPage(
            url=url,
            entries=entries,
            next_url=urljoin(url, next_url) if next_url else None,
        )

    def iter_pages(self, url: str, max_pages: Optional[int] = None) -> Iterator[EntryPage]:
        """Yield directory pages, following "Next" until a page has none.

        There is no revisit detection; ``max_pages`` is the only guard
        against a server whose "Next" links loop.
        """
        page_url: Optional[str] = url
        fetched = 0
        while page_url:
            if max_pages is not None and fetched >= max_pages:
                logging.warning(
                    "Stopping after %d page(s); %s not fetched", fetched, page_url
                )
                return
            page = self.fetch_page(page_url)
            fetched += 1
            yield page
            page_url = page.next_url

    def walk(
        self,
        url: str,
        emit: Emitter,
        max_pages: Optional[int] = None,
        progress: bool = False,
    ) -> int:
        """Emit every entry of every page starting at ``url``; return the count."""
        count = 0
        with tqdm(unit="page", desc="Directory pages", disable=not progress) as bar:
            for page in self.iter_pages(url, max_pages=max_pages):
                for entry in page.entries:
                    emit(page, entry)
                    count += 1
                bar.update(1)
        logging.info("Listed %d directory entries", count)
        return count

    def crawl(
        self,
        directory_url: str,
        emit: Emitter,
        max_pages: Optional[int] = None,
        progress: bool = False,
    ) -> int:
        """Common continuation of both modes: menu -> input -> pages."""
        input_url = self.resolve_input_directory_url(directory_url)
        listing_url = self.resolve_listing_url(input_url)
        return self.walk(listing_url, emit, max_pages=max_pages, progress=progress)


def download_bootstrap_file(
    server: str,
    filename: str,
    port: int = TFTP_PORT,
    dest_dir: str = DOWNLOAD_DIR,
) -> str:
    """Fetch ``filename`` from a TFTP server (octet mode) into ``dest_dir``.

    The transfer lands in ``<filename>.part`` and only replaces ``filename``
    once complete, so a failed run leaves an earlier copy untouched.
    """
    local_path = os.path.join(dest_dir, filename)
    part_path = local_path + ".part"
    logging.info("Requesting %s from tftp://%s:%d", filename, server, port)
    try:
        client = tftpy.TftpClient(server, port)
        client.download(filename, part_path)
        os.replace(part_path, local_path)
    except (tftpy.TftpException, OSError) as exc:
        if os.path.exists(part_path):
            os.remove(part_path)
        raise TransferError(f"Can't get {filename} from {server}:{port}: {exc}") from exc
    logging.info("Got %s (%d bytes)", filename, os.path.getsize(local_path))
    return local_path


def select_mode(
    phone: Optional[str],
    hostname: Optional[str],
    server: Optional[str],
    port: Optional[int],
) -> str:
    """Return ``"web"`` or ``"bootstrap"``; reject mixed or incomplete inputs."""
    if phone:
        if hostname or server or port is not None:
            raise ConfigurationError(
                "--phone cannot be combined with --hostname, --server or --port"
            )
        return "web"
    if hostname and server:
        return "bootstrap"
    if hostname or server or port is not None:
        raise ConfigurationError("TFTP mode needs both --hostname and --server")
    raise ConfigurationError("Give either --phone, or --hostname with --server")


def run_web_mode(crawler: DirectoryCrawler, phone: str, emit: Emitter, **walk_opts) -> int:
    directory_url = crawler.resolve_phone_config_url(phone)
    return crawler.crawl(directory_url, emit, **walk_opts)


def run_bootstrap_mode(
    crawler: DirectoryCrawler,
    hostname: str,
    server: str,
    emit: Emitter,
    port: int = TFTP_PORT,
    download_dir: str = DOWNLOAD_DIR,
    **walk_opts,
) -> int:
    filename = f"{hostname}.cnf.xml"
    path = download_bootstrap_file(server, filename, port=port, dest_dir=download_dir)
    directory_url = crawler.resolve_locale_directory_url(path)
    return crawler.crawl(directory_url, emit, **walk_opts)


def make_emitter(out: Optional[TextIO] = None) -> Emitter:
    """Print each entry as an account record, optionally mirroring it to JSONL."""

    def emit(page: EntryPage, entry: DirectoryEntry) -> None:
        print("****Account****")
        print(f"Name: {entry.name or ''}")
        print(f"Telephone: {entry.telephone or ''}")
        if out is not None:
            record = {"name": entry.name, "telephone": entry.telephone, "source": page.url}
            out.write(json.dumps(record, ensure_ascii=False) + "\n")
            out.flush()

    return emit


def positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {value}")
    return number


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Dump the corporate directory of a Cisco IP phone"
    )
    tftp = parser.add_argument_group("TFTP mode")
    tftp.add_argument("--hostname", help="hostname of a phone (e.g. SEP12345678)")
    tftp.add_argument("--server", help="IP address or hostname of the TFTP server")
    tftp.add_argument("--port", type=int, default=None,
                      help=f"TFTP port (default {TFTP_PORT})")
    tftp.add_argument("--download-dir", default=DOWNLOAD_DIR,
                      help="where to store the downloaded bootstrap file")
    web = parser.add_argument_group("web crawling mode")
    web.add_argument("--phone", help="IP address of a Cisco VOIP phone")
    parser.add_argument("--timeout", type=float, default=REQUEST_TIMEOUT,
                        help="seconds per HTTP request")
    parser.add_argument("--max-pages", type=positive_int, default=None,
                        help="stop after this many directory pages (default: no limit)")
    parser.add_argument("--output", help="also write entries to this JSONL file")
    parser.add_argument("--progress", action="store_true", help="show a page counter")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        mode = select_mode(args.phone, args.hostname, args.server, args.port)
        with ExitStack() as stack:
            out = None
            if args.output:
                try:
                    out = stack.enter_context(open(args.output, "w", encoding="utf-8"))
                except OSError as exc:
                    raise ConfigurationError(f"Can't open {args.output}: {exc}") from exc
            crawler = DirectoryCrawler(timeout=args.timeout)
            stack.callback(crawler.session.close)
            emit = make_emitter(out)
            walk_opts = {"max_pages": args.max_pages, "progress": args.progress}
            if mode == "web":
                run_web_mode(crawler, args.phone, emit, **walk_opts)
            else:
                run_bootstrap_mode(
                    crawler,
                    args.hostname,
                    args.server,
                    emit,
                    port=args.port if args.port is not None else TFTP_PORT,
                    download_dir=args.download_dir,
                    **walk_opts,
                )
    except DirectoryError as exc:
        logging.critical("%s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
