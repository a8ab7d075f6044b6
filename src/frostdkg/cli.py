"""
Command-line front end. Every command runs one protocol round, prints its
output message as a single JSON line on stdout for copy/paste, and exits 0.
Any failure prints a diagnostic on stderr and exits 1.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from . import codec
from .config import FrostConfig
from .errors import FrostError, InvalidParameters
from .keygen import KeygenCoordinator
from .primitives import scalar_to_hex
from .signing import SigningCoordinator, verify_signature
from .store import FileStore

logger = logging.getLogger(__name__)


def setup_logging(level: str = "WARNING") -> None:
    """Log to stderr so stdout carries only the message to paste."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def _signer_index(args, config: FrostConfig) -> int:
    index = args.my_index if args.my_index is not None else config.my_index
    if index is None:
        raise InvalidParameters("Pass --my-index or set my_index in the configuration")
    return index


def keygen_round1(args, config: FrostConfig) -> int:
    keygen = KeygenCoordinator(FileStore(config.state_dir), config.key_id)
    message = keygen.round1(args.threshold, args.n_parties, args.my_index)
    print(codec.serialize(message))
    return 0


def keygen_round2(args, config: FrostConfig) -> int:
    keygen = KeygenCoordinator(FileStore(config.state_dir), config.key_id)
    message = keygen.round2(args.my_index, args.data)
    print(codec.serialize(message))
    return 0


def keygen_finalize(args, config: FrostConfig) -> int:
    keygen = KeygenCoordinator(FileStore(config.state_dir), config.key_id)
    package = keygen.finalize(args.my_index, args.data)
    print(codec.serialize(package.public_message()))
    if args.show_secret:
        print(f"secret share: {scalar_to_hex(package.secret_share)}", file=sys.stderr)
    return 0


def generate_nonce(args, config: FrostConfig) -> int:
    signer = SigningCoordinator(
        FileStore(config.state_dir), _signer_index(args, config), config.key_id
    )
    print(codec.serialize(signer.generate_nonce(args.session)))
    return 0


def sign(args, config: FrostConfig) -> int:
    signer = SigningCoordinator(
        FileStore(config.state_dir), _signer_index(args, config), config.key_id
    )
    print(codec.serialize(signer.sign(args.session, args.message, args.data)))
    return 0


def combine(args, config: FrostConfig) -> int:
    signer = SigningCoordinator(FileStore(config.state_dir), key_id=config.key_id)
    print(codec.serialize(signer.combine(args.data)))
    return 0


def verify(args, config: FrostConfig) -> int:
    if verify_signature(args.signature, args.public_key, args.message):
        print("valid")
        return 0
    print("invalid")
    return 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="frostdkg",
        description="FROST threshold key generation and signing, one round per command.",
    )
    parser.add_argument("--config", type=Path, help="TOML configuration file.")
    parser.add_argument("--state-dir", type=Path, help="Directory for persisted round state.")
    parser.add_argument("--key-id", type=str, help="Name of the threshold key.")
    parser.add_argument("--log-level", type=str, help="DEBUG, INFO, WARNING or ERROR.")
    subparsers = parser.add_subparsers()

    parser_round1 = subparsers.add_parser(
        "keygen-round1", help="Commit to a fresh polynomial."
    )
    parser_round1.add_argument("--threshold", type=int, required=True, help="Signers needed.")
    parser_round1.add_argument("--n-parties", type=int, required=True, help="Total parties.")
    parser_round1.add_argument("--my-index", type=int, required=True, help="Your index, 1-based.")
    parser_round1.set_defaults(func=keygen_round1)

    parser_round2 = subparsers.add_parser(
        "keygen-round2", help="Verify all commitments and produce shares."
    )
    parser_round2.add_argument("--my-index", type=int, required=True)
    parser_round2.add_argument("--data", type=str, required=True, help="All round 1 messages.")
    parser_round2.set_defaults(func=keygen_round2)

    parser_finalize = subparsers.add_parser(
        "keygen-finalize", help="Verify the shares sent to you and derive the key."
    )
    parser_finalize.add_argument("--my-index", type=int, required=True)
    parser_finalize.add_argument("--data", type=str, required=True, help="All round 2 messages.")
    parser_finalize.add_argument(
        "--show-secret", action="store_true", help="Also print the secret share on stderr."
    )
    parser_finalize.set_defaults(func=keygen_finalize)

    parser_nonce = subparsers.add_parser(
        "generate-nonce", help="Generate your nonce for a signing session."
    )
    parser_nonce.add_argument(
        "--session", type=str, required=True, help="Session label, one per message."
    )
    parser_nonce.add_argument("--my-index", type=int)
    parser_nonce.set_defaults(func=generate_nonce)

    parser_sign = subparsers.add_parser("sign", help="Create your signature share.")
    parser_sign.add_argument("--session", type=str, required=True)
    parser_sign.add_argument("--message", type=str, required=True, help="Message to sign.")
    parser_sign.add_argument("--data", type=str, required=True, help="The quorum's nonces.")
    parser_sign.add_argument("--my-index", type=int)
    parser_sign.set_defaults(func=sign)

    parser_combine = subparsers.add_parser(
        "combine", help="Combine signature shares into a signature."
    )
    parser_combine.add_argument("--data", type=str, required=True, help="All signature shares.")
    parser_combine.set_defaults(func=combine)

    parser_verify = subparsers.add_parser("verify", help="Verify a signature.")
    parser_verify.add_argument("--signature", type=str, required=True)
    parser_verify.add_argument("--public-key", type=str, required=True)
    parser_verify.add_argument("--message", type=str, required=True, help="Message to verify.")
    parser_verify.set_defaults(func=verify)

    return parser


def load_config(args) -> FrostConfig:
    if args.config is not None:
        config = FrostConfig.from_file(args.config)
    else:
        env_path = Path(".env")
        if env_path.exists():
            load_dotenv(env_path)
        config = FrostConfig.from_env()

    if args.state_dir is not None:
        config.state_dir = args.state_dir
    if args.key_id is not None:
        config.key_id = args.key_id
    if args.log_level is not None:
        config.log_level = args.log_level
    config.validate()
    return config


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        config = load_config(args)
        setup_logging(config.log_level)
        return args.func(args, config)
    except FrostError as e:
        logger.debug("Command failed", exc_info=True)
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
