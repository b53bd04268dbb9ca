#!/usr/bin/env python3
"""
Issue an admin invitation access code from the command line

Usage:
    python scripts/issue_access_code.py --admin admin@access-gate.local
    python scripts/issue_access_code.py --admin admin@access-gate.local --email new.user@example.com
"""

import argparse
import sys
from datetime import timedelta
from pathlib import Path

# Add the backend directory to the Python path
sys.path.append(str(Path(__file__).parent.parent))

from access_gate import create_app  # noqa: E402
from access_gate.exceptions import AccessGateError  # noqa: E402
from access_gate.models import User  # noqa: E402
from access_gate.services.invitations import InvitationOrchestrator  # noqa: E402
from access_gate.utils.auth import Principal  # noqa: E402


# ANSI color codes for console output
class Colors:
    GREEN = '\033[92m'
    YELLOW = '\033[93m'
    RED = '\033[91m'
    BOLD = '\033[1m'
    END = '\033[0m'


def issue_code(admin_email, email=None, name=None, expiry_hours=24):
    """Issue one code as admin_email; returns the process exit status"""
    admin = User.find_by_email(admin_email)
    if admin is None or not admin.is_admin:
        print(f"{Colors.RED}[ERROR]{Colors.END} {admin_email} is not an admin user")
        return 1

    principal = Principal(id=str(admin.id), email=admin.email, role=admin.role)

    try:
        invitation = InvitationOrchestrator().invite_directly(
            principal,
            email=email,
            name=name,
            ttl=timedelta(hours=expiry_hours)
        )
    except AccessGateError as e:
        print(f"{Colors.RED}[ERROR]{Colors.END} {e.message}")
        return 1

    details = invitation.to_dict()
    print(f"{Colors.GREEN}[SUCCESS]{Colors.END} Access code: {Colors.BOLD}{details['access_code']}{Colors.END}")
    print(f"  Expires at:     {details['expires_at']}")
    print(f"  Invitation URL: {details['invitation_url']}")

    if email:
        if invitation.email_sent:
            print(f"  Emailed to:     {email}")
        else:
            print(f"{Colors.YELLOW}[WARNING]{Colors.END} Email to {email} not sent: {invitation.email_error or 'email delivery not configured'}")

    return 0


def main():
    """Main function with command line argument parsing"""
    parser = argparse.ArgumentParser(
        description="Issue an admin invitation access code"
    )
    parser.add_argument(
        "--admin",
        required=True,
        help="Email of the admin issuing the code (recorded in the audit log)"
    )
    parser.add_argument(
        "--email",
        help="Send the invitation to this address"
    )
    parser.add_argument(
        "--name",
        help="Recipient name used in the invitation email"
    )
    parser.add_argument(
        "--expiry-hours",
        type=int,
        default=24,
        help="Code lifetime in hours (default: 24)"
    )
    parser.add_argument(
        "--config",
        default="development",
        help="Configuration name (default: development)"
    )

    args = parser.parse_args()

    if args.expiry_hours < 1:
        print(f"{Colors.RED}[ERROR]{Colors.END} --expiry-hours must be at least 1")
        sys.exit(1)

    app = create_app(args.config)
    with app.app_context():
        sys.exit(issue_code(args.admin, args.email, args.name, args.expiry_hours))


if __name__ == "__main__":
    main()
