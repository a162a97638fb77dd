#!/usr/bin/env python3
"""Manage roster users and demo data from the command line."""

import sys
import argparse
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from roster.config import get
from roster.db import init_db, DatabaseStorage
from roster.services import UserService, RosterError, build_services, seed_demo_data


def open_storage() -> DatabaseStorage:
    """Initialize the configured database and return its storage."""
    db_path = get("database.path")
    init_db(db_path)
    return DatabaseStorage()


def list_users():
    """List all users."""
    users = UserService(open_storage()).list_users()

    if not users:
        print("No users found.")
        return

    print("\nUsers:")
    print("="*80)
    for user in users:
        status = "✓ Active" if user.is_active else "✗ Inactive"
        print(f"\n ID: {user.id}")
        print(f" Name: {user.name}")
        print(f" Email: {user.email}")
        print(f" Role: {user.role.value}")
        print(f" Facility: {user.facility or 'N/A'}")
        print(f" Status: {status}")
    print("="*80)
    print()


def create_user(name: str, email: str, role: str = "employee", facility: str = None):
    """Create a new user."""
    try:
        user = UserService(open_storage()).create_user(name, email, role=role, facility=facility)
    except RosterError as e:
        print(f"❌ {e.message}")
        return

    print(f"\n✅ Created {user.role.value} '{user.name}' (ID: {user.id})")
    print()


def set_role(user_id: str, role: str):
    """Change a user's role."""
    if UserService(open_storage()).update_user_role(user_id, role):
        print(f"\n✅ User {user_id} is now a {role}.")
    else:
        print(f"❌ Could not change role of user {user_id} (missing, or the last active manager).")


def set_status(user_id: str, is_active: bool):
    """Activate or deactivate a user."""
    action = "activated" if is_active else "deactivated"
    if UserService(open_storage()).update_user_status(user_id, is_active):
        print(f"\n✅ User {user_id} has been {action}.")
    else:
        print(f"❌ User {user_id} could not be {action} (missing, or the last active manager).")


def delete_user(user_id: str):
    """Delete a user."""
    if UserService(open_storage()).delete_user(user_id):
        print(f"\n✅ User {user_id} has been deleted.")
    else:
        print(f"❌ User {user_id} could not be deleted (missing, or the last active manager).")


def seed():
    """Seed demo users and tasks into empty storage."""
    seeded = seed_demo_data(open_storage())
    if seeded:
        print(f"\n✅ Seeded: {', '.join(seeded)}")
    else:
        print("Storage already holds users and tasks; nothing seeded.")


def sweep():
    """Run the registration deadline sweep once."""
    services = build_services(
        open_storage(),
        assignment_strategy=get("tasks.assignment_strategy", "random"),
        timezone=get("timezone"),
    )
    assigned = services.tasks.sweep_deadlines()
    if not assigned:
        print("No tasks were due for assignment.")
        return
    for task in assigned:
        print(f"✅ '{task.title}' assigned to {task.assigned_to}")


def main():
    parser = argparse.ArgumentParser(description="Manage roster users and data")
    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    # List command
    subparsers.add_parser("list", help="List all users")

    # Create command
    create_parser = subparsers.add_parser("create", help="Create a new user")
    create_parser.add_argument("name", help="Full name")
    create_parser.add_argument("email", help="Email address")
    create_parser.add_argument("--role", "-r", choices=["manager", "employee"], default="employee")
    create_parser.add_argument("--facility", "-f", help="Hospital or health center")

    # Role command
    role_parser = subparsers.add_parser("role", help="Change a user's role")
    role_parser.add_argument("id", help="User ID")
    role_parser.add_argument("role", choices=["manager", "employee"])

    # Activate / deactivate commands
    activate_parser = subparsers.add_parser("activate", help="Activate a user")
    activate_parser.add_argument("id", help="User ID")
    deactivate_parser = subparsers.add_parser("deactivate", help="Deactivate a user")
    deactivate_parser.add_argument("id", help="User ID")

    # Delete command
    delete_parser = subparsers.add_parser("delete", help="Delete a user")
    delete_parser.add_argument("id", help="User ID")

    # Data commands
    subparsers.add_parser("seed", help="Seed demo users and tasks")
    subparsers.add_parser("sweep", help="Assign tasks whose registration deadline has passed")

    args = parser.parse_args()

    if args.command == "list":
        list_users()
    elif args.command == "create":
        create_user(args.name, args.email, args.role, args.facility)
    elif args.command == "role":
        set_role(args.id, args.role)
    elif args.command == "activate":
        set_status(args.id, True)
    elif args.command == "deactivate":
        set_status(args.id, False)
    elif args.command == "delete":
        delete_user(args.id)
    elif args.command == "seed":
        seed()
    elif args.command == "sweep":
        sweep()
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
