"""CLINK command line.

Usage:
    clink decode noffer1...                     # Decode a pointer to JSON
    clink encode offer --pubkey HEX --relay wss://... --offer ID --price-type fixed
    clink encode debit --pubkey HEX --relay wss://... [--pointer P]
    clink encode manage --pubkey HEX --relay wss://... [--pointer P]
    clink keygen                                # Print a fresh key pair

    clink offer noffer1... [--amount 1000]      # Request an invoice
    clink debit ndebit1... --bolt11 lnbc...     # Ask a wallet to pay
    clink manage-list nmanage1...               # List managed offers

Request commands read keys and relays from CLINK_* environment variables
or from --config FILE (YAML).
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import Any

import click
from pydantic import BaseModel

from .errors import ClinkError
from .pointers import (
    DebitPointer,
    ManagePointer,
    OfferPointer,
    OfferPriceType,
    decode,
    encode,
)
from .sdk.client import create_client
from .sdk.crypto import KeyPair
from .settings import ClinkSettings


PRICE_TYPES = {t.name.lower(): t for t in OfferPriceType}


def _configure_logging(verbose: bool) -> None:
    """Send all logging to stderr so stdout stays machine readable."""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    root_logger.addHandler(stderr_handler)
    root_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)


def _echo_json(data: Any) -> None:
    if isinstance(data, BaseModel):
        data = data.model_dump(mode="json", exclude_none=True)
    click.echo(json.dumps(data, indent=2))


def _load_settings(config_path: str | None) -> ClinkSettings:
    try:
        settings = ClinkSettings.from_yaml(config_path) if config_path else ClinkSettings.from_env()
        KeyPair.from_private(settings.private_key)
        return settings
    except ValueError as e:
        raise click.UsageError(f"Invalid configuration: {e}") from e


def _decode_as(text: str, expected: type) -> Any:
    try:
        pointer = decode(text)
    except ClinkError as e:
        raise click.BadParameter(str(e)) from e
    if not isinstance(pointer, expected):
        raise click.BadParameter(f"expected {expected.__name__}, got {type(pointer).__name__}")
    return pointer


def _run(settings: ClinkSettings, pubkey: str, relay: str, send: Any) -> None:
    """Run *send(client)* against the pointer's counterparty and print the result."""
    settings.to_pubkey = pubkey
    if not settings.relays:
        settings.relays = [relay]

    async def go() -> Any:
        async with create_client(settings) as client:
            return await send(client)

    try:
        result = asyncio.run(go())
    except ClinkError as e:
        raise click.ClickException(str(e)) from e
    _echo_json(result)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging on stderr")
def main(verbose: bool) -> None:
    """CLINK - encrypted requests over Nostr relays and pointer codecs."""
    _configure_logging(verbose)


@main.command("decode")
@click.argument("pointer")
def decode_cmd(pointer: str) -> None:
    """Decode a noffer/ndebit/nmanage pointer and print it as JSON."""
    try:
        _echo_json(decode(pointer))
    except ClinkError as e:
        raise click.ClickException(str(e)) from e


@main.group("encode")
def encode_group() -> None:
    """Encode a pointer."""


@encode_group.command("offer")
@click.option("--pubkey", required=True, help="Counterparty public key (hex)")
@click.option("--relay", required=True, help="Relay URL hint")
@click.option("--offer", "offer_id", required=True, help="Offer identifier")
@click.option(
    "--price-type",
    type=click.Choice(sorted(PRICE_TYPES)),
    default="fixed",
    show_default=True,
)
@click.option("--price", type=click.IntRange(min=0), default=None, help="Price in sats")
def encode_offer_cmd(pubkey: str, relay: str, offer_id: str, price_type: str, price: int | None) -> None:
    """Encode a noffer pointer."""
    try:
        pointer = OfferPointer(
            pubkey=pubkey, relay=relay, offer=offer_id, price_type=PRICE_TYPES[price_type], price=price
        )
        click.echo(encode(pointer))
    except (ValueError, ClinkError) as e:
        raise click.ClickException(str(e)) from e


@encode_group.command("debit")
@click.option("--pubkey", required=True, help="Counterparty public key (hex)")
@click.option("--relay", required=True, help="Relay URL hint")
@click.option("--pointer", default=None, help="Optional pointer string")
def encode_debit_cmd(pubkey: str, relay: str, pointer: str | None) -> None:
    """Encode an ndebit pointer."""
    try:
        click.echo(encode(DebitPointer(pubkey=pubkey, relay=relay, pointer=pointer)))
    except (ValueError, ClinkError) as e:
        raise click.ClickException(str(e)) from e


@encode_group.command("manage")
@click.option("--pubkey", required=True, help="Counterparty public key (hex)")
@click.option("--relay", required=True, help="Relay URL hint")
@click.option("--pointer", default=None, help="Optional pointer string")
def encode_manage_cmd(pubkey: str, relay: str, pointer: str | None) -> None:
    """Encode an nmanage pointer."""
    try:
        click.echo(encode(ManagePointer(pubkey=pubkey, relay=relay, pointer=pointer)))
    except (ValueError, ClinkError) as e:
        raise click.ClickException(str(e)) from e


@main.command("keygen")
def keygen_cmd() -> None:
    """Generate a key pair."""
    pair = KeyPair.generate()
    _echo_json({"private_key": pair.private_key.hex(), "public_key": pair.public_key})


@main.command("offer")
@click.argument("noffer")
@click.option("--amount", type=click.IntRange(min=0), default=None, help="Amount in sats")
@click.option("--description", default=None, help="Payer description (max 100 chars)")
@click.option("--timeout", type=float, default=None, help="Response timeout in seconds")
@click.option("--config", "config_path", type=click.Path(exists=True), default=None)
def offer_cmd(
    noffer: str, amount: int | None, description: str | None, timeout: float | None, config_path: str | None
) -> None:
    """Request an invoice for a noffer pointer."""
    pointer: OfferPointer = _decode_as(noffer, OfferPointer)
    settings = _load_settings(config_path)
    data: dict[str, Any] = {"offer": pointer.offer}
    if amount is not None:
        data["amount_sats"] = amount
    if description is not None:
        data["description"] = description
    _run(settings, pointer.pubkey, pointer.relay, lambda client: client.offer(data, timeout))


@main.command("debit")
@click.argument("ndebit")
@click.option("--bolt11", default=None, help="Invoice to pay")
@click.option("--amount", type=click.IntRange(min=0), default=None, help="Amount in sats")
@click.option("--timeout", type=float, default=None, help="Response timeout in seconds")
@click.option("--config", "config_path", type=click.Path(exists=True), default=None)
def debit_cmd(
    ndebit: str, bolt11: str | None, amount: int | None, timeout: float | None, config_path: str | None
) -> None:
    """Send a debit request to an ndebit pointer."""
    pointer: DebitPointer = _decode_as(ndebit, DebitPointer)
    settings = _load_settings(config_path)
    data: dict[str, Any] = {"pointer": pointer.pointer, "bolt11": bolt11, "amount_sats": amount}
    data = {k: v for k, v in data.items() if v is not None}
    _run(settings, pointer.pubkey, pointer.relay, lambda client: client.debit(data, timeout))


@main.command("manage-list")
@click.argument("nmanage")
@click.option("--timeout", type=float, default=30.0, show_default=True)
@click.option("--config", "config_path", type=click.Path(exists=True), default=None)
def manage_list_cmd(nmanage: str, timeout: float, config_path: str | None) -> None:
    """List offers through an nmanage pointer."""
    pointer: ManagePointer = _decode_as(nmanage, ManagePointer)
    settings = _load_settings(config_path)
    _run(
        settings,
        pointer.pubkey,
        pointer.relay,
        lambda client: client.offers.list(pointer.pointer, timeout),
    )


if __name__ == "__main__":
    main()
