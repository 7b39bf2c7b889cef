#!/usr/bin/env python3
"""Bootstrap an admin user.

Usage:
    # Using environment variables:
    ADMIN_EMAIL=admin@example.com ADMIN_PASSWORD='Adm1n!pass' python scripts/bootstrap_admin.py

    # Or with command line args:
    python scripts/bootstrap_admin.py --email admin@example.com --password 'Adm1n!pass' --name "Site Admin"
"""

from signalhub.cli import main

if __name__ == "__main__":
    main()
