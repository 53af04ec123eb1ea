"""
Example: SHC link sharing end to end

Runs the whole sharing flow in-process against ``SHCLinkService``:
- A data holder initializes a package and shares one file behind a PIN
- A recipient claims the link and reads the shared file
- A second recipient is turned away once the claim limit is reached
- Replacing the link policy revokes the first recipient's token
"""

import asyncio
import json
import logging

from shclink import SHCLinkService, ServiceConfig, SignedClient, SHCLinkError
from shclink.service import filtered_bundle_loader

BUNDLE = {
    "resourceType": "Bundle",
    "type": "collection",
    "entry": [
        {"resource": {"resourceType": "Patient", "id": "p1", "name": [{"family": "Anyperson"}]}},
        {"resource": {"resourceType": "Immunization", "id": "i1", "vaccineCode": {"text": "COVID-19"}}},
        {"resource": {"resourceType": "Observation", "id": "o1", "code": {"text": "SARS-CoV-2 PCR"}}},
    ],
}


def show(label, value):
    print(f"   {label}: {json.dumps(value, indent=2) if isinstance(value, (dict, list)) else value}")


async def main():
    logging.basicConfig(level=logging.WARNING)
    print("🔗 SHC Link Sharing Demo")
    print("=" * 50)

    service = SHCLinkService(ServiceConfig.from_env(), resource_loader=filtered_bundle_loader(BUNDLE))
    gnap = service.config.gnap_endpoint
    holder = SignedClient(display={"name": "Health wallet"})
    recipient = SignedClient(display={"name": "Verifier app"})
    latecomer = SignedClient(display={"name": "Second verifier"})

    print("\n1. Holder initializes a package...")
    initialized = await service.request_access(
        holder.request("POST", gnap, body=holder.transaction(["shclink-initialize"]))
    )
    holder_token = initialized["access_token"]["value"]
    modify, share = initialized["access_token"]["access"]
    show("modify", modify["locations"][0])
    show("share", share["locations"][0])

    print("\n2. Holder shares Immunization.json behind a PIN...")
    file_url = f"{modify['locations'][0]}/Immunization.json"
    shared = await service.put_policy(
        holder.request(
            "PUT",
            share["locations"][0],
            body={"needPin": "1234", "claimLimit": 1, "locations": [file_url]},
            access_token=holder_token,
        )
    )
    package_id = shared["gnap"]["access"]
    show("link", shared["gnap"])

    print("\n3. Recipient claims the link with the PIN...")
    claimed = await service.request_access(
        recipient.request("POST", gnap, body=recipient.transaction([package_id], pin="1234"))
    )
    recipient_token = claimed["access_token"]["value"]
    show("granted", claimed["access_token"]["access"])

    print("\n4. Recipient reads the shared file...")
    bundle = await service.read_resource(recipient.request("GET", file_url, access_token=recipient_token))
    show("entries", [e["resource"]["resourceType"] for e in bundle["entry"]])

    print("\n5. A second recipient tries the same link...")
    try:
        await service.request_access(
            latecomer.request("POST", gnap, body=latecomer.transaction([package_id], pin="1234"))
        )
        print("   ❌ Claim limit was not enforced!")
    except SHCLinkError as e:
        print(f"   ✅ Rejected: {e.reason}")

    print("\n6. Holder replaces the policy...")
    replaced = await service.put_policy(
        holder.request(
            "PUT",
            share["locations"][0],
            body={"claimLimit": 2, "locations": [file_url]},
            access_token=holder_token,
        )
    )
    show("revoked tokens", replaced["revoked"])
    try:
        await service.read_resource(recipient.request("GET", file_url, access_token=recipient_token))
        print("   ❌ Revoked token still works!")
    except SHCLinkError as e:
        print(f"   ✅ Old token rejected: {e.reason}")

    print("\n7. Metrics:")
    for name, value in service.metrics.snapshot().items():
        print(f"   {name}: {value}")

    print("\n🎉 Demo completed successfully!")


if __name__ == "__main__":
    asyncio.run(main())
