import json

import pytest

from database.manager import DatabaseManager, MonitorStore
from exceptions import InvalidDomainError
from main import add_domain, add_recipient, build_parser, run_once


async def stored(settings):
    db = DatabaseManager(settings)
    await db.initialize()
    store = MonitorStore(db)
    try:
        return (
            await store.list_domains(),
            await store.list_email_recipients(),
            await store.list_phone_recipients(),
        )
    finally:
        await db.close()


def test_parser_defaults():
    parser = build_parser()

    assert parser.parse_args([]).command is None
    assert parser.parse_args(["run-once"]).trigger == "manual"

    args = parser.parse_args(["add-domain", "example.com", "--name", "Shop", "--no-expiry-alerts"])
    assert args.domain == "example.com"
    assert args.url is None
    assert args.no_expiry_alerts is True
    assert args.no_downtime_alerts is False


def test_add_recipient_requires_exactly_one_target():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["add-recipient"])


@pytest.mark.asyncio
async def test_add_domain_command(settings, capsys):
    args = build_parser().parse_args(["add-domain", "example.com", "--name", "Shop"])

    assert await add_domain(settings, args) == 0

    printed = json.loads(capsys.readouterr().out)
    assert printed["uptime_url"] == "https://example.com"
    assert printed["display_name"] == "Shop"

    domains, _, _ = await stored(settings)
    assert [d.domain_name for d in domains] == ["example.com"]


@pytest.mark.asyncio
async def test_add_domain_rejects_bad_host(settings):
    args = build_parser().parse_args(["add-domain", "not a domain"])
    with pytest.raises(InvalidDomainError):
        await add_domain(settings, args)


@pytest.mark.asyncio
async def test_add_recipient_command(settings, capsys):
    parser = build_parser()

    await add_recipient(settings, parser.parse_args(["add-recipient", "--email", "ops@example.com"]))
    await add_recipient(settings, parser.parse_args(["add-recipient", "--email", "ops@example.com"]))
    await add_recipient(settings, parser.parse_args(["add-recipient", "--phone", "+919876543210"]))

    lines = capsys.readouterr().out.splitlines()
    assert lines == [
        "ops@example.com added",
        "ops@example.com already registered",
        "+919876543210 added",
    ]

    _, emails, phones = await stored(settings)
    assert emails == ["ops@example.com"]
    assert phones == ["+919876543210"]


@pytest.mark.asyncio
async def test_run_once_without_domains(settings, capsys):
    assert await run_once(settings, "manual") == 0

    summary = json.loads(capsys.readouterr().out)
    assert summary["trigger"] == "manual"
    assert summary["domains_processed"] == 0


@pytest.mark.asyncio
async def test_add_domain_accepts_url(settings, capsys):
    args = build_parser().parse_args(["add-domain", "https://shop.example.com/status"])

    await add_domain(settings, args)

    printed = json.loads(capsys.readouterr().out)
    assert printed["domain_name"] == "shop.example.com"
    assert printed["uptime_url"] == "https://shop.example.com/status"
