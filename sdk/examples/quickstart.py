"""HandshakeGuard client quickstart

1. Request a protected page and complete the handshake
2. Inspect the token
3. Renew it
4. Revoke it
"""
import os

from handshake_client import HandshakeClient

BASE_URL = os.getenv("HANDSHAKE_GUARD_URL", "http://localhost:8000")


def main():
    client = HandshakeClient(base_url=BASE_URL)

    print("1. Handshake...")
    response = client.handshake("/")
    print(f"   ✓ {response.status_code} {response.json()}")

    print("2. Status...")
    status = client.status()
    print(f"   ✓ valid={status['valid']} remaining={status['metadata']['remaining_seconds']}s")

    print("3. Renew...")
    renewed = client.renew()
    print(f"   ✓ expires in {renewed['expires_in']}s")

    print("4. Revoke...")
    client.revoke()
    print(f"   ✓ valid={client.status()['valid']}")


if __name__ == "__main__":
    main()
