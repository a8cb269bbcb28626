#!/usr/bin/env python3
"""
permit721 CLI

Prepare, sign and check ERC721 permits off-line. Nothing here talks to a
network: the signer only needs the token's name, chain id, address and the
token's current nonce.
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import click
from eth_account import Account
from pydantic import ValidationError
from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from permit721.core import config
from permit721.core.input_validation_schemas import PermitTypedDataInput
from permit721.core.logging_config import setup_logging
from permit721.core.typed_signing import (
    create_permit_signature_request,
    hash_domain,
    permit_domain,
)
from permit721.wallet.offline_signing import (
    default_deadline,
    permit_typed_data,
    recover_permit_signer,
    sign_typed_data,
    typed_data_hash,
)

# Configure module logger
logger = logging.getLogger(__name__)

console = Console()


def _cli_fail(exc: Exception, exit_code: int = 1) -> None:
    """Centralized CLI error handler for consistent messaging."""
    logger.error("CLI error: %s", exc, exc_info=True)
    console.print(f"[bold red]Error:[/] {escape(str(exc))}")
    sys.exit(exit_code)


def _emit(ctx: click.Context, payload: Dict[str, Any], title: str) -> None:
    """Print a flat result as JSON or as a rich panel."""
    if ctx.obj.get("json_output"):
        click.echo(json.dumps(payload, indent=2))
        return

    table = Table(show_header=False, box=box.ROUNDED)
    for key, value in payload.items():
        table.add_row(f"[bold cyan]{key}", str(value))
    console.print(Panel(table, title=f"[bold green]{title}", border_style="green"))


def _permit_options(func):
    """Options shared by commands that build a permit."""
    options = [
        click.option("--name", required=True, help="Token name (EIP-712 domain)"),
        click.option(
            "--chain-id",
            type=click.IntRange(min=1),
            default=config.CHAIN_ID,
            show_default=True,
            help="Chain id (EIP-712 domain)",
        ),
        click.option("--contract", required=True, help="Token contract address"),
        click.option("--spender", required=True, help="Address to approve"),
        click.option("--token-id", type=click.IntRange(min=0), required=True, help="Token to approve"),
        click.option("--nonce", type=click.IntRange(min=0), required=True, help="Token's current nonce"),
        click.option(
            "--deadline",
            type=click.IntRange(min=0),
            default=None,
            help=f"Last valid timestamp (defaults to now + {config.PERMIT_TTL_SECONDS}s)",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _build_typed_data(
    name: str,
    chain_id: int,
    contract: str,
    spender: str,
    token_id: int,
    nonce: int,
    deadline: Optional[int],
) -> Dict[str, Any]:
    return permit_typed_data(
        name,
        chain_id,
        contract,
        spender,
        token_id,
        nonce,
        default_deadline() if deadline is None else deadline,
    )


@click.group()
@click.option("--json-output", is_flag=True, help="Output raw JSON")
@click.pass_context
def cli(ctx: click.Context, json_output: bool):
    """
    permit721 - off-line tooling for ERC721 permits

    Build EIP-712 Permit typed data, sign it with an owner key and recover
    the signer of an existing permit.
    """
    ctx.ensure_object(dict)
    setup_logging(name="permit721", enable_console=False)
    ctx.obj["json_output"] = json_output


@cli.command("domain-separator")
@click.option("--name", required=True, help="Token name")
@click.option(
    "--chain-id",
    type=click.IntRange(min=1),
    default=config.CHAIN_ID,
    show_default=True,
    help="Chain id",
)
@click.option("--contract", required=True, help="Token contract address")
@click.pass_context
def domain_separator(ctx: click.Context, name: str, chain_id: int, contract: str):
    """Compute a token's EIP-712 domain separator"""
    try:
        separator = hash_domain(
            permit_domain(name, chain_id, contract, config.PERMIT_DOMAIN_VERSION)
        )
    except ValueError as exc:
        _cli_fail(exc)
        return

    _emit(
        ctx,
        {
            "name": name,
            "version": config.PERMIT_DOMAIN_VERSION,
            "chainId": chain_id,
            "verifyingContract": contract,
            "domainSeparator": "0x" + separator.hex(),
        },
        "Domain Separator",
    )


@cli.command("typed-data")
@_permit_options
@click.option(
    "--request",
    is_flag=True,
    help="Emit an eth_signTypedData_v4 request (typed data plus digest)",
)
@click.pass_context
def typed_data(
    ctx: click.Context,
    name: str,
    chain_id: int,
    contract: str,
    spender: str,
    token_id: int,
    nonce: int,
    deadline: Optional[int],
    request: bool,
):
    """Print the Permit typed data a wallet would sign"""
    try:
        if request:
            payload = create_permit_signature_request(
                name,
                contract,
                chain_id,
                spender,
                token_id,
                nonce,
                default_deadline() if deadline is None else deadline,
            )
        else:
            payload = _build_typed_data(name, chain_id, contract, spender, token_id, nonce, deadline)
    except ValueError as exc:
        _cli_fail(exc)
        return

    # Always JSON: the output is meant to be handed to a signer
    click.echo(json.dumps(payload, indent=2))


@cli.command("sign")
@_permit_options
@click.option(
    "--private-key",
    envvar="PERMIT721_PRIVATE_KEY",
    prompt=True,
    hide_input=True,
    help="Owner private key (hex); read from PERMIT721_PRIVATE_KEY or prompted",
)
@click.option(
    "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Also write the typed data to this file",
)
@click.pass_context
def sign(
    ctx: click.Context,
    name: str,
    chain_id: int,
    contract: str,
    spender: str,
    token_id: int,
    nonce: int,
    deadline: Optional[int],
    private_key: str,
    output: Optional[Path],
):
    """Sign a permit with an owner key"""
    try:
        data = _build_typed_data(name, chain_id, contract, spender, token_id, nonce, deadline)
        signer = Account.from_key(private_key).address
        signature = sign_typed_data(private_key, data)
        if output:
            output.write_text(json.dumps(data, indent=2))
    except (ValueError, TypeError, OSError) as exc:
        _cli_fail(exc)
        return

    logger.info(
        "Permit signed",
        extra={
            "event": "cli.permit_signed",
            "signer": signer[:10],
            "token_id": token_id,
            "nonce": nonce,
        }
    )
    _emit(
        ctx,
        {
            "signer": signer,
            "spender": data["message"]["spender"],
            "tokenId": token_id,
            "nonce": nonce,
            "deadline": data["message"]["deadline"],
            "digest": "0x" + typed_data_hash(data).hex(),
            "signature": "0x" + signature.hex(),
        },
        "Permit Signed",
    )


@cli.command("recover")
@click.option(
    "--typed-data",
    "typed_data_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    required=True,
    help="File holding the Permit typed data JSON",
)
@click.option("--signature", required=True, help="Signature hex")
@click.pass_context
def recover(ctx: click.Context, typed_data_file: Path, signature: str):
    """Recover the signer of a permit"""
    try:
        raw = json.loads(typed_data_file.read_text())
        data = PermitTypedDataInput.model_validate(raw).to_typed_data()
        signer = recover_permit_signer(data, signature)
    except ValidationError as exc:
        _cli_fail(ValueError(f"invalid permit typed data: {exc.error_count()} error(s)\n{exc}"))
        return
    except (ValueError, TypeError, OSError) as exc:
        _cli_fail(exc)
        return

    _emit(
        ctx,
        {
            "signer": signer,
            "spender": data["message"]["spender"],
            "tokenId": data["message"]["tokenId"],
            "nonce": data["message"]["nonce"],
            "deadline": data["message"]["deadline"],
            "digest": "0x" + typed_data_hash(data).hex(),
        },
        "Permit Signer",
    )


def main():
    """Main CLI entry point"""
    try:
        cli(obj={})
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user[/]")
        sys.exit(130)
    except (click.ClickException, ValueError, KeyError, TypeError) as exc:
        _cli_fail(exc)


if __name__ == "__main__":
    main()
