import argparse
import json
import os
import sys

from notifications.tokens import TOKEN_KEY, TokenError, TokenValidator

# ====================================================================
# CONFIGURATION
# The terminal password must be the same one the gateway signs with.
# It is read from the environment unless passed explicitly.
# ====================================================================
PASSWORD_ENV = "TINKOFF_TERMINAL_PASSWORD"


def generate_token(payload, password):
    """
    Generates the Token field for a Tinkoff notification payload.

    Args:
        payload (dict): The decoded JSON notification.
        password (str): The terminal password shared with the gateway.

    Returns:
        str: The lowercase hexadecimal SHA-256 token.
    """
    return TokenValidator(password).compute_token(payload)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Generate or check the Token of a Tinkoff notification.")
    parser.add_argument("payload", nargs="?", help="JSON file with the notification body (stdin if omitted)")
    parser.add_argument("--password", default=os.environ.get(PASSWORD_ENV, ""), help=f"terminal password (default: ${PASSWORD_ENV})")
    parser.add_argument("--verify", action="store_true", help=f"check the {TOKEN_KEY} already present in the payload")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)

    try:
        if args.payload:
            with open(args.payload, encoding="utf-8") as f:
                payload = json.load(f)
        else:
            payload = json.load(sys.stdin)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        print(f"error: cannot read notification: {exc}", file=sys.stderr)
        return 2

    try:
        validator = TokenValidator(args.password)
        if args.verify:
            valid = validator.verify(payload)
            print("Token is valid" if valid else "Token does NOT match")
            return 0 if valid else 1
        print(f"Generated Token:\n{validator.compute_token(payload)}")
    except TokenError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
    return 0


# ====================================================================
# SCRIPT EXECUTION
# ====================================================================
if __name__ == "__main__":
    sys.exit(main())
