"""
Command-line driver for the multisig handoff workflow.

    multisig-tx setup                     # install a 2-of-3 signer table
    multisig-tx prepare --payment DEST 500
    multisig-tx sign 1                    # on signer 1's machine
    multisig-tx sign 3                    # on signer 3's machine
    multisig-tx status
    multisig-tx send --simulate-only      # dry run, nothing is submitted
    multisig-tx send

    multisig-tx run --payment DEST 500    # all of the above with local secrets

Settings come from MULTISIG_* environment variables (see `config`).
Key material comes from MASTER_SECRET and SIGNER_SECRET_<n>, each a hex
ed25519 seed; public signer keys for `setup` may be given as
SIGNER_PUBLIC_<n> instead.
"""

from __future__ import annotations
from typing import Dict, List, Mapping, Optional, Sequence
import argparse
import json
import logging
import os
import sys

from .config import Settings, load_config
from .crypto.ed25519 import Ed25519Error
from .handoff import HandoffDirectory
from .pipeline import TransactionPipeline, submit_and_finalize
from .runtime.errors import ConfigurationError, MultisigTxError
from .signers.ed25519 import Ed25519Signer
from .signers.multisig import sign, threshold_progress
from .simulation.resolver import SimulationResolver
from .transport.base import LedgerTransport
from .transport.rpc import JsonRpcTransport
from .tx.operations import configure_multisig, invoke_contract, payment
from .tx.types import Envelope, StatusKind, normalize_identity

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INCONCLUSIVE = 2


def make_transport(settings: Settings) -> LedgerTransport:
    """Transport used by every subcommand."""
    return JsonRpcTransport(settings.network.rpc_url, timeout=settings.network.request_timeout)


def _signer_from_env(env: Mapping[str, str], name: str) -> Ed25519Signer:
    secret = env.get(name)
    if not secret:
        raise ConfigurationError(f"{name} is not set")
    try:
        return Ed25519Signer.from_secret(secret.strip())
    except Ed25519Error as e:
        raise ConfigurationError(f"{name} is not a valid ed25519 seed", cause=e)


def _signer_identities(env: Mapping[str, str], count: int) -> List[str]:
    identities = []
    for n in range(1, count + 1):
        public = env.get(f"SIGNER_PUBLIC_{n}")
        if public:
            try:
                identities.append(normalize_identity(public.strip()))
            except ValueError as e:
                raise ConfigurationError(f"SIGNER_PUBLIC_{n} is not a valid public key", cause=e)
        else:
            identities.append(_signer_from_env(env, f"SIGNER_SECRET_{n}").identity)
    return identities


def _source(args: argparse.Namespace, env: Mapping[str, str]) -> str:
    if args.source:
        try:
            return normalize_identity(args.source)
        except ValueError as e:
            raise ConfigurationError(f"Invalid source account: {args.source}", cause=e)
    return _signer_from_env(env, "MASTER_SECRET").identity


# =============================================================================
# Subcommands
# =============================================================================


def cmd_setup(args: argparse.Namespace, settings: Settings, env: Mapping[str, str]) -> int:
    master = _signer_from_env(env, "MASTER_SECRET")
    identities = _signer_identities(env, args.signers)
    if not 1 <= args.threshold <= args.signers * args.weight:
        raise ConfigurationError(
            f"Threshold {args.threshold} is unreachable with {args.signers} signers of weight {args.weight}"
        )

    print(f"Multisig master: {master.identity}")
    for n, identity in enumerate(identities, 1):
        print(f"Signer {n}       : {identity}")

    try:
        operations = configure_multisig(
            {identity: args.weight for identity in identities},
            low_threshold=0,
            med_threshold=args.threshold,
            high_threshold=args.threshold,
            master_weight=0,
        )
    except ValueError as e:
        raise ConfigurationError(f"Invalid signer table: {e}", cause=e)
    with make_transport(settings) as transport:
        pipeline = TransactionPipeline(transport, settings)
        pipeline.build(master.identity, operations)
        pipeline.simulate_and_prepare()
        pipeline.sign(master)
        result = pipeline.submit()

        account = transport.get_account(master.identity)
    print(f"✓ Multisig setup finalized: {result.tx_hash}")
    print(f"  Thresholds: {', '.join(f'{level.name.lower()}={value}' for level, value in account.thresholds.items())}")
    print(f"  Signers: {sum(1 for w in account.weights.values() if w > 0)}")
    return EXIT_OK


def cmd_prepare(args: argparse.Namespace, settings: Settings, env: Mapping[str, str]) -> int:
    source = _source(args, env)
    operations = []
    for destination, amount in args.payment or ():
        try:
            operations.append(payment(destination, int(amount)))
        except ValueError as e:
            raise ConfigurationError(f"Invalid payment {destination} {amount}: {e}", cause=e)
    if args.invoke:
        contract, function = args.invoke
        try:
            call_args = json.loads(args.args) if args.args else []
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"--args must be a JSON array: {e}", cause=e)
        if not isinstance(call_args, list):
            raise ConfigurationError("--args must be a JSON array")
        try:
            operations.append(invoke_contract(contract, function, call_args))
        except ValueError as e:
            raise ConfigurationError(f"Invalid invocation {contract}.{function}: {e}", cause=e)
    if not operations:
        raise ConfigurationError("Nothing to prepare; pass --payment or --invoke")

    with make_transport(settings) as transport:
        pipeline = TransactionPipeline(transport, settings)
        pipeline.build(source, operations)
        envelope = pipeline.simulate_and_prepare()

    path = HandoffDirectory(args.dir).write_unsigned(envelope)
    print(f"✓ Transaction prepared and saved to {path}")
    print(f"  Hash: {envelope.hash_hex()}")
    print(f"  Fee: {envelope.body.fee} (sequence {envelope.body.sequence})")
    if pipeline.second_pass_required:
        print("  Signer-specific authorization present; it will be re-simulated before sending")
    return EXIT_OK


def cmd_sign(args: argparse.Namespace, settings: Settings, env: Mapping[str, str]) -> int:
    signer = _signer_from_env(env, f"SIGNER_SECRET_{args.signer}")
    handoff = HandoffDirectory(args.dir)
    if args.chain:
        envelope = handoff.read_for_signer(args.signer, settings.network.network_id)
    else:
        envelope = handoff.latest(settings.network.network_id)
    print(f"Signer {args.signer}: {signer.identity}")

    signed = sign(envelope, signer)
    path = handoff.write_signed(args.signer, signed)
    print(f"✓ Transaction signed by signer {args.signer} and saved to {path}")
    print(f"  Signatures: {len(signed.signatures)}")
    return EXIT_OK


def cmd_status(args: argparse.Namespace, settings: Settings, env: Mapping[str, str]) -> int:
    envelope = HandoffDirectory(args.dir).latest(settings.network.network_id)
    tx_hash = envelope.hash_hex()
    print(f"Transaction: {tx_hash}")
    print(f"  Signatures: {len(envelope.signatures)}")

    with make_transport(settings) as transport:
        account = transport.get_account(envelope.body.source_account)
        progress = threshold_progress(envelope, account)
        status = transport.get_status(tx_hash)

    print(f"  Weight: {progress.accumulated}/{progress.required} ({progress.level.name.lower()})")
    for identity in progress.non_contributing:
        print(f"  Not counted: {identity}")
    print(f"  Ready to send: {'yes' if progress.met and progress.contributing else 'no'}")
    if status.kind != StatusKind.NOT_FOUND:
        print(f"  Ledger status: {status.kind.value}")
    return EXIT_OK


def cmd_send(args: argparse.Namespace, settings: Settings, env: Mapping[str, str]) -> int:
    handoff = HandoffDirectory(args.dir)
    envelope = handoff.latest(settings.network.network_id)
    if args.simulate_only:
        return _dry_run(envelope, settings)
    print(f"Submitting {envelope.hash_hex()} with {len(envelope.signatures)} signatures...")

    with make_transport(settings) as transport:
        result = submit_and_finalize(transport, envelope, settings.pipeline.poll, settings)

    if result.succeeded:
        print(f"✓ Transaction finalized in ledger {result.ledger}")
        print(f"  Result: {json.dumps(result.result, sort_keys=True)}")
        if not args.keep:
            for path in handoff.cleanup():
                print(f"  Cleaned up {path.name}")
        return EXIT_OK
    if result.inconclusive:
        print(f"? {result.error.message}")
        return EXIT_INCONCLUSIVE
    print(f"✗ {result.error}")
    return EXIT_FAILED


def _dry_run(envelope: Envelope, settings: Settings) -> int:
    """Simulate the envelope as it would be sent, without submitting it."""
    print(f"Simulating {envelope.hash_hex()} with {len(envelope.signatures)} signatures...")
    with make_transport(settings) as transport:
        resolver = SimulationResolver(transport, settings.pipeline.second_pass)
        if envelope.signatures and envelope.body.prepared:
            result = resolver.resimulate_signed(envelope)
        else:
            result = resolver.simulate(envelope)
        progress = threshold_progress(envelope, transport.get_account(envelope.body.source_account))

    print("✓ Simulation succeeded; nothing was submitted")
    print(f"  Resource fee: {result.min_resource_fee} (latest ledger {result.latest_ledger})")
    print(f"  Authorization entries: {len(result.auth)}")
    print(f"  Weight: {progress.accumulated}/{progress.required} ({progress.level.name.lower()})")
    return EXIT_OK


def cmd_run(args: argparse.Namespace, settings: Settings, env: Mapping[str, str]) -> int:
    print("1. Preparing transaction")
    cmd_prepare(args, settings, env)
    for step, signer in enumerate(args.sign_with, 2):
        print(f"{step}. Signing with signer {signer}")
        cmd_sign(argparse.Namespace(dir=args.dir, signer=signer, chain=False), settings, env)
    print(f"{len(args.sign_with) + 2}. Sending transaction")
    return cmd_send(argparse.Namespace(dir=args.dir, keep=args.keep, simulate_only=args.simulate_only),
                    settings, env)


# =============================================================================
# Entry point
# =============================================================================


def _add_operation_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument('--source', help='Source account (default: MASTER_SECRET\'s account)')
    parser.add_argument('--payment', nargs=2, action='append', metavar=('DEST', 'AMOUNT'),
                        help='Add a payment operation')
    parser.add_argument('--invoke', nargs=2, metavar=('CONTRACT', 'FUNCTION'),
                        help='Add a contract invocation')
    parser.add_argument('--args', help='JSON array of invocation arguments')


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="multisig-tx",
        description="Prepare, sign and submit threshold-signed transactions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Turn the master account into a 2-of-3 multisig account
    multisig-tx setup --threshold 2

    # Prepare a payment, collect two signatures, send it
    multisig-tx prepare --payment <destination> 500
    multisig-tx sign 1
    multisig-tx sign 2
    multisig-tx send

    # Same thing in one go when every secret is local
    multisig-tx run --payment <destination> 500 --sign-with 1 3
        """
    )
    parser.add_argument('--rpc-url', help='RPC endpoint (default: $MULTISIG_RPC_URL)')
    parser.add_argument('--dir', default='.',
                        help='Directory holding the handoff files (default: %(default)s)')
    parser.add_argument('--verbose', '-v', action='store_true', help='Verbose output')

    sub = parser.add_subparsers(dest='command', required=True)

    setup = sub.add_parser('setup', help='Install the multisig signer table on the master account')
    setup.add_argument('--signers', type=int, default=3,
                       help='Number of signers (default: %(default)s)')
    setup.add_argument('--threshold', type=int, default=2,
                       help='Medium and high threshold (default: %(default)s)')
    setup.add_argument('--weight', type=int, default=1,
                       help='Weight of each signer (default: %(default)s)')
    setup.set_defaults(func=cmd_setup)

    prepare = sub.add_parser('prepare', help='Build and simulate an unsigned transaction')
    _add_operation_arguments(prepare)
    prepare.set_defaults(func=cmd_prepare)

    sign_cmd = sub.add_parser('sign', help='Add a signature to the latest envelope')
    sign_cmd.add_argument('signer', type=int, help='Signer number (reads SIGNER_SECRET_<n>)')
    sign_cmd.add_argument('--chain', action='store_true',
                          help="Read signer n-1's file instead of the latest envelope")
    sign_cmd.set_defaults(func=cmd_sign)

    status = sub.add_parser('status', help='Show collected weight and ledger status')
    status.set_defaults(func=cmd_status)

    send = sub.add_parser('send', help='Submit the signed envelope and wait for finalization')
    send.add_argument('--keep', action='store_true', help='Keep handoff files after success')
    send.add_argument('--simulate-only', action='store_true',
                      help='Dry-run the signed envelope without submitting it')
    send.set_defaults(func=cmd_send)

    run = sub.add_parser('run', help='Prepare, sign and send in one go with local secrets')
    _add_operation_arguments(run)
    run.add_argument('--sign-with', type=int, nargs='+', default=[1, 2], metavar='N',
                     help='Signer numbers to sign with (default: 1 2)')
    run.add_argument('--keep', action='store_true', help='Keep handoff files after success')
    run.add_argument('--simulate-only', action='store_true',
                     help='Dry-run the signed envelope without submitting it')
    run.set_defaults(func=cmd_run)

    return parser


def main(argv: Optional[Sequence[str]] = None, env: Optional[Dict[str, str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    env = dict(os.environ if env is None else env)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if args.rpc_url:
        env["MULTISIG_RPC_URL"] = args.rpc_url
    if getattr(args, 'signer', 1) < 1 or min(getattr(args, 'sign_with', [1])) < 1:
        parser.error("signer numbers start at 1")

    try:
        settings = load_config(env)
        return args.func(args, settings, env)
    except MultisigTxError as e:
        print(f"✗ {e}")
        logger.debug("Command failed", exc_info=True)
        return EXIT_FAILED
    except OSError as e:
        print(f"✗ {e}")
        return EXIT_FAILED


if __name__ == '__main__':
    sys.exit(main())
