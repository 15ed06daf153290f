#!/usr/bin/env python3
"""
Principal/Keytab Consistency Check Example

Demonstrates how to use ktverify to provision service principals, verify
that the KDC and a stored keytab agree, and detect drift.

Features:
1. Provisioning principals and storing their keytab
2. Consistency check with reproducible checksum
3. Listing principals held by a keytab secret
4. Detecting key rotation and missing principals
5. State machine trace export for audit
"""

from ktverify import Principal, create_simulated_manager
from ktverify.render import render_json, render_text


def main():
    """Demonstrate principal/keytab consistency checks."""

    print("=" * 70)
    print("ktverify - Principal/Keytab Consistency Check")
    print("=" * 70)
    print()

    # Configuration
    REALM = "EXAMPLE.COM"
    SECRET = "__kafka-keytab"

    manager = create_simulated_manager()
    brokers = [
        Principal.from_string(f"kafka/broker-{i}.example.com@{REALM}") for i in range(3)
    ]

    # ==========================================================================
    # EXAMPLE 1: Provision Principals
    # ==========================================================================
    print("1. Provision Principals")
    print("-" * 40)

    manager.add_principals(brokers, secret=SECRET)

    for principal in brokers:
        print(f"   Added: {principal}")
    print(f"   Keytab stored as: {SECRET}")
    print()

    # ==========================================================================
    # EXAMPLE 2: Consistency Check
    # ==========================================================================
    print("2. Consistency Check")
    print("-" * 40)

    status = manager.check_principals(brokers, secret=SECRET)

    print(f"   Passed: {status.passed}")
    print(f"   Checksum: {status.checksum}")
    print(f"   JSON: {render_json(status)}")
    print()

    # ==========================================================================
    # EXAMPLE 3: List Principals in Secret
    # ==========================================================================
    print("3. List Principals in Secret")
    print("-" * 40)

    listing = manager.list_principals(filter="kafka/*", secret=SECRET)

    for line in render_text(listing).splitlines():
        print(f"   {line}")
    print(f"   Same checksum as check: {listing.checksum == status.checksum}")
    print()

    # ==========================================================================
    # EXAMPLE 4: Detect Key Rotation
    # ==========================================================================
    print("4. Detect Key Rotation")
    print("-" * 40)

    manager.kdc.randomize_keys(brokers[0])
    manager.secrets.store(SECRET, manager.kdc.export_keytab(brokers))

    rotated = manager.check_principals(brokers, secret=SECRET)
    print(f"   Passed: {rotated.passed}")
    print(f"   Checksum changed: {rotated.checksum != status.checksum}")
    print()

    # ==========================================================================
    # EXAMPLE 5: Detect Missing Principal
    # ==========================================================================
    print("5. Detect Missing Principal")
    print("-" * 40)

    newcomer = Principal.from_string(f"kafka/broker-3.example.com@{REALM}")
    manager.kdc.add_missing_principals([newcomer])

    missing = manager.check_principals(brokers + [newcomer], secret=SECRET)
    print(f"   Passed: {missing.passed}")
    print(f"   Reason: {missing.reason}")
    print(f"   Text: {render_text(missing).splitlines()[0]}")
    print()

    # ==========================================================================
    # EXAMPLE 6: Audit Trace
    # ==========================================================================
    print("6. Audit Trace")
    print("-" * 40)

    _, machine = manager.checker.check_with_trace(brokers, SECRET)

    print(f"   States: {' -> '.join(machine.visited_states())}")
    print(f"   Transitions: {len(machine.get_trace())}")
    print()

    print("=" * 70)
    print("Example complete!")
    print("=" * 70)


if __name__ == "__main__":
    main()
