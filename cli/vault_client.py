"""Command-line client for a Blobtrail server."""

from __future__ import annotations

import argparse
import os
import sys
from typing import Any
from urllib.parse import quote, urlparse

import httpx

DEFAULT_SERVER = "http://localhost:8080"
_LOCALHOST_HOSTS = {"localhost", "127.0.0.1", "::1"}


def validate_server_url(server_url: str, allow_insecure_http: bool = False) -> str:
    """Validate server URL and enforce HTTPS for non-localhost hosts by default."""
    normalized = server_url.strip().rstrip("/")
    parsed = urlparse(normalized)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError("Server URL must include scheme and host (e.g. https://example.com)")

    hostname = parsed.hostname
    if parsed.scheme == "http" and not allow_insecure_http and hostname not in _LOCALHOST_HOSTS:
        raise ValueError(
            "HTTPS is required for non-localhost servers. "
            "Use --allow-insecure-http only on trusted networks."
        )

    return normalized


def _file_url(path: str, *parts: str | int) -> str:
    url = "/api/files/" + quote(path.strip("/"), safe="/")
    for part in parts:
        url += f"/{part}"
    return url


class BlobtrailClient:
    """Thin wrapper over the Blobtrail HTTP API."""

    def __init__(
        self,
        server_url: str,
        *,
        transport: httpx.BaseTransport | None = None,
        timeout: float = 60.0,
    ) -> None:
        self.server_url = server_url.rstrip("/")
        self.client = httpx.Client(base_url=self.server_url, transport=transport, timeout=timeout)

    def close(self) -> None:
        """Close the HTTP client."""
        self.client.close()

    def __enter__(self) -> BlobtrailClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def _get(self, url: str) -> Any:
        resp = self.client.get(url)
        resp.raise_for_status()
        return resp.json()

    def _post(self, url: str) -> Any:
        resp = self.client.post(url)
        resp.raise_for_status()
        return resp.json()

    def list_files(self) -> list[dict[str, Any]]:
        result: list[dict[str, Any]] = self._get("/api/files")
        return result

    def get_file(self, path: str) -> dict[str, Any]:
        result: dict[str, Any] = self._get(_file_url(path))
        return result

    def list_versions(self, path: str) -> list[dict[str, Any]]:
        result: list[dict[str, Any]] = self._get(_file_url(path, "versions"))
        return result

    def get_version(self, path: str, version_id: int) -> dict[str, Any]:
        result: dict[str, Any] = self._get(_file_url(path, "versions", version_id))
        return result

    def diff(self, path: str, old_id: int, new_id: int) -> dict[str, Any]:
        result: dict[str, Any] = self._get(_file_url(path, "diff", old_id, new_id))
        return result

    def restore(self, path: str, version_id: int) -> dict[str, Any]:
        result: dict[str, Any] = self._post(_file_url(path, "restore", version_id))
        return result

    def scan(self) -> dict[str, Any]:
        result: dict[str, Any] = self._post("/api/scan")
        return result

    def scan_status(self) -> dict[str, Any]:
        result: dict[str, Any] = self._get("/api/scan/status")
        return result

    def integrity(self) -> dict[str, Any]:
        result: dict[str, Any] = self._get("/api/integrity")
        return result


def format_split(diff: dict[str, Any], width: int = 40) -> str:
    """Render the split rows of a diff response as two fixed-width columns."""

    def cell(line: dict[str, Any] | None, number_key: str, marker: str) -> str:
        if line is None:
            return " " * (width + 6)
        number = line.get(number_key)
        prefix = marker if line["type"] != "context" else " "
        text = line["content"][:width].ljust(width)
        return f"{number or '':>4} {prefix}{text}"

    out = []
    for row in diff.get("split", []):
        left = cell(row.get("left"), "old_line_number", "-")
        right = cell(row.get("right"), "new_line_number", "+")
        out.append(f"{left} | {right}".rstrip())
    return "\n".join(out)


def format_report(report: dict[str, Any]) -> str:
    lines = [
        f"Scan started {report['started_at']}",
        f"  Objects seen:    {report['objects_seen']}",
        f"  Created:         {report['created'] + report['resurrected']}",
        f"  Modified:        {report['modified']}",
        f"  Metadata only:   {report['metadata_updated']}",
        f"  Deleted:         {report['deleted']}",
    ]
    for scope in report.get("failed_scopes", []):
        lines.append(f"  ! scope failed: {scope}")
    for error in report.get("errors", []):
        lines.append(f"  ! {error}")
    return "\n".join(lines)


def run_command(client: BlobtrailClient, args: argparse.Namespace) -> int:
    """Execute the parsed command and return the process exit code."""
    if args.command == "files":
        for entry in client.list_files():
            state = "deleted" if entry["is_deleted"] else entry.get("latest_change_type") or "-"
            print(f"{entry['path']}  [{state}]  {entry['version_count']} versions")
    elif args.command == "versions":
        for version in client.list_versions(args.path):
            print(
                f"v{version['id']:<6} {version['change_type']:<9} "
                f"{version['captured_at']}  {version['content_hash'][:12]}"
            )
    elif args.command == "show":
        version = client.get_version(args.path, args.version)
        sys.stdout.write(version["content"])
    elif args.command == "diff":
        result = client.diff(args.path, args.old, args.new)
        if not result["has_changes"]:
            print("No changes")
        elif args.split:
            print(format_split(result, width=args.width))
        else:
            sys.stdout.write(result["unified_diff"])
        stats = result["stats"]
        print(
            f"+{stats['lines_added']} -{stats['lines_removed']} "
            f"~{stats['lines_changed']}"
        )
    elif args.command == "restore":
        result = client.restore(args.path, args.version)
        print(f"Restored {result['path']} to v{result['version_id']}")
        print(result["message"])
    elif args.command == "scan":
        print(format_report(client.scan()))
    elif args.command == "status":
        status = client.scan_status()
        print(f"Scanner running: {status['running']} (every {status['interval_seconds']}s)")
        print(f"Cycles completed: {status['cycles_completed']}")
        for scope in status.get("scopes", []):
            print(f"  scope {scope}")
        if status.get("last_report"):
            print(format_report(status["last_report"]))
    elif args.command == "integrity":
        result = client.integrity()
        if result["ok"]:
            print("All versions verified")
        else:
            ids = ", ".join(str(version_id) for version_id in result["corrupted_version_ids"])
            print(f"Corrupted versions: {ids}")
            return 1
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="blobtrail-client",
        description="Browse version history and restore files on a Blobtrail server",
    )
    parser.add_argument(
        "--server",
        "-s",
        default=os.environ.get("BLOBTRAIL_SERVER", DEFAULT_SERVER),
        help=f"Server URL (default: $BLOBTRAIL_SERVER or {DEFAULT_SERVER})",
    )
    parser.add_argument(
        "--allow-insecure-http",
        action="store_true",
        help="Allow http:// server URLs for non-localhost hosts",
    )

    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("files", help="List tracked files")

    versions = subparsers.add_parser("versions", help="List versions of a file")
    versions.add_argument("path", help="Canonical path: account/container/blob")

    show = subparsers.add_parser("show", help="Print the content of a version")
    show.add_argument("path")
    show.add_argument("version", type=int)

    diff = subparsers.add_parser("diff", help="Diff two versions of a file")
    diff.add_argument("path")
    diff.add_argument("old", type=int)
    diff.add_argument("new", type=int)
    diff.add_argument("--split", action="store_true", help="Side-by-side output")
    diff.add_argument("--width", type=int, default=40, help="Column width for --split")

    restore = subparsers.add_parser("restore", help="Push a version back to blob storage")
    restore.add_argument("path")
    restore.add_argument("version", type=int)

    subparsers.add_parser("scan", help="Run a scan cycle now")
    subparsers.add_parser("status", help="Show scanner status")
    subparsers.add_parser("integrity", help="Verify every stored version")
    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        sys.exit(1)

    try:
        server_url = validate_server_url(args.server, args.allow_insecure_http)
    except ValueError as exc:
        print(f"Error: {exc}")
        sys.exit(1)

    with BlobtrailClient(server_url) as client:
        try:
            code = run_command(client, args)
        except httpx.HTTPStatusError as exc:
            detail = exc.response.text
            try:
                detail = exc.response.json().get("detail", detail)
            except ValueError:
                pass
            print(f"Error: {exc.response.status_code} {detail}")
            sys.exit(1)
        except httpx.HTTPError as exc:
            print(f"Error: could not reach {server_url}: {exc}")
            sys.exit(1)
    sys.exit(code)


if __name__ == "__main__":
    main()
