"""
Interactive setup wizard.

Prompts for Garmin credentials once, exchanges them for OAuth tokens,
and saves the tokens to <state_dir>/garmin_session/ with owner-only
permissions (0700 dir / 0600 files).

After setup, sync runs connect to Garmin using the saved tokens;
credentials are never stored on disk.

Usage:
    python -m routesync setup

Re-run any time the session expires.
"""
import getpass
import sys

from routesync.services import build_auth


def run_setup() -> None:
    auth = build_auth()

    print("\nRoute Sync: Garmin Setup\n")
    print("Your credentials will NOT be saved to disk.")
    print(f"OAuth tokens will be stored in: {auth.tokens_dir}\n")

    if auth.has_session():
        print("An existing session was found.")
        overwrite = input("Overwrite it with a new login? [y/N] ").strip().lower()
        if overwrite != "y":
            print("Setup cancelled. Existing session unchanged.")
            sys.exit(0)

    email = input("Garmin Connect email: ").strip()
    if not email:
        print("Error: email cannot be empty.")
        sys.exit(1)

    password = getpass.getpass("Garmin Connect password: ")
    if not password:
        print("Error: password cannot be empty.")
        sys.exit(1)

    print("\nAuthenticating with Garmin Connect...")
    try:
        auth.authenticate_and_save(email, password)
    except Exception as exc:
        print(f"\nAuthentication failed: {exc}")
        print("Check your email and password and try again.")
        sys.exit(1)

    print(f"\nTokens saved to {auth.tokens_dir}")
    print("Run `python -m routesync sync` to load your routes.\n")


if __name__ == "__main__":
    run_setup()
