"""Certification level catalog: which accepted challenges unlock which credential."""

from __future__ import annotations

from academy.certification.eligibility import CertificationLevel

ACCEPTED_REVIEW_ACTION = "ACCEPTED"

CERTIFICATION_LEVEL_SEED_DATA: list[dict] = [
    {
        "level_key": "web3-basics",
        "level": 1,
        "name": "Web3 Basics with Stylus",
        "description": "Complete challenges 1-3 to earn your first NFT badge",
        "required_challenges": ["simple-counter-example", "simple-nft-example", "vending-machine"],
    },
    {
        "level_key": "core-stylus",
        "level": 2,
        "name": "Core Stylus Engineering",
        "description": "Complete challenges 1-5 to earn your second NFT badge",
        "required_challenges": [
            "simple-counter-example",
            "simple-nft-example",
            "vending-machine",
            "multisig-wallet",
            "uniswap-v2-stylus",
        ],
    },
    {
        "level_key": "zkp-basics",
        "level": 3,
        "name": "ZKP Basics with Stylus",
        "description": "Complete challenges 6-8 to earn your third NFT badge",
        "required_challenges": ["zkp-age", "zkp-balance", "zkp-password"],
    },
    {
        "level_key": "zkp-advanced",
        "level": 4,
        "name": "ZKP Advanced with Stylus",
        "description": "Complete challenges 6-11 to earn your fourth NFT badge",
        "required_challenges": [
            "zkp-age",
            "zkp-balance",
            "zkp-password",
            "zkp-location",
            "zkp-model",
            "zkp-public-doc-verifier",
        ],
    },
    {
        "level_key": "agentic-defi",
        "level": 5,
        "name": "Agentic DeFi Basics",
        "description": "Complete challenge 12 to earn your fifth NFT badge",
        "required_challenges": ["vibekit-setup"],
    },
    {
        "level_key": "agentic-wallets",
        "level": 6,
        "name": "Agentic Wallets & Signals",
        "description": "Complete challenges 12-14 to earn your sixth NFT badge",
        "required_challenges": ["vibekit-setup", "vibekit-basic-agents", "vibekit-advanced-agents"],
    },
    {
        "level_key": "farcaster-miniapps",
        "level": 7,
        "name": "Farcaster Miniapps with Stylus",
        "description": "Complete challenge 15 to earn your final NFT badge",
        "required_challenges": ["farcaster-miniapps"],
    },
]

CERTIFICATION_LEVELS: tuple[CertificationLevel, ...] = tuple(
    CertificationLevel(
        level_key=raw["level_key"],
        level=raw["level"],
        name=raw["name"],
        description=raw["description"],
        required_challenges=tuple(raw["required_challenges"]),
    )
    for raw in CERTIFICATION_LEVEL_SEED_DATA
)


def get_level(level: int) -> CertificationLevel | None:
    """Look up a certification level by its number."""
    for candidate in CERTIFICATION_LEVELS:
        if candidate.level == level:
            return candidate
    return None
