"""Static curriculum catalog.

Chapter and section ids are part of the persisted progress format: renaming
one orphans every learner's completions for it.
"""

from __future__ import annotations

from academy.curriculum.models import (
    Availability,
    Chapter,
    CurriculumModule,
    Difficulty,
    Section,
    SectionType,
)

DEFAULT_MODULE_ID = "web3-basics"

# Legacy module identifiers still sent by older clients.
MODULE_ALIASES: dict[str, str] = {
    "defi-arbitrum": "master-defi",
}

CURRICULUM_SEED_DATA: list[dict] = [
    {
        "id": "web3-basics",
        "title": "Web3 Basics",
        "chapters": [
            {
                "id": "evolution-of-the-web",
                "title": "Evolution of the Web",
                "difficulty": "Beginner",
                "sections": [
                    ("web1-to-web3-story", "story", "The Web's Evolution Story"),
                    ("web-evolution-quiz", "quiz", "Web Evolution Quiz"),
                ],
            },
            {
                "id": "public-private-keys",
                "title": "Public & Private Keys",
                "difficulty": "Beginner",
                "sections": [
                    ("kais-key-adventure", "story", "Kai's Cryptographic Adventure"),
                    ("key-pairs-explained", "theory", "How Key Pairs Work"),
                    ("key-security-quiz", "quiz", "Key Security Quiz"),
                ],
            },
            {
                "id": "digital-wallets",
                "title": "Digital Wallets",
                "difficulty": "Beginner",
                "sections": [
                    ("mayas-wallet-journey", "story", "Maya's First Digital Wallet"),
                    ("wallet-quiz", "quiz", "Wallet Fundamentals Quiz"),
                    ("hardware-wallet-lab", "hands-on", "Hardware Wallet Lab", "coming-soon"),
                ],
            },
            {
                "id": "nfts-digital-ownership",
                "title": "NFTs & Digital Ownership",
                "difficulty": "Beginner",
                "status": "coming-soon",
                "sections": [
                    ("nft-ownership-story", "story", "Owning the Unownable", "coming-soon"),
                ],
            },
        ],
    },
    {
        "id": "cross-chain",
        "title": "Cross-Chain Interoperability",
        "chapters": [
            {
                "id": "cross-chain-foundations",
                "title": "Cross-Chain Foundations",
                "difficulty": "Beginner",
                "sections": [
                    ("blockchain-silos-story", "story", "The Tale of Blockchain Islands"),
                    ("bridges-real-world-analogy", "theory", "Toll Bridges and Customs"),
                    ("foundations-code-template", "code-example", "Reading Bridge Events"),
                    ("foundations-hands-on", "hands-on", "Map the Bridge Flow"),
                    ("foundations-quiz", "quiz", "Foundations Quiz"),
                ],
            },
            {
                "id": "token-bridging",
                "title": "Cross-Chain Token Bridging",
                "difficulty": "Intermediate",
                "sections": [
                    ("token-bridge-mechanics", "theory", "Token Bridge Mechanics"),
                    ("building-token-bridge", "hands-on", "Building Your Own Token Bridge"),
                    ("simple-erc20-approve-transfer-template", "code-example", "Approve + Lock"),
                    ("token-bridging-mini-quiz", "quiz", "Preventing Double-Minting Attacks"),
                ],
            },
            {
                "id": "advanced-cross-chain",
                "title": "Advanced Cross-Chain Protocols",
                "difficulty": "Advanced",
                "sections": [
                    ("cross-chain-security", "theory", "Cross-Chain Security Deep Dive"),
                    ("message-passing-challenge", "challenge", "Message Passing Challenge"),
                    ("intent-bridges", "theory", "Intent-Based Bridges", "coming-soon"),
                ],
            },
        ],
    },
    {
        "id": "master-defi",
        "title": "Master DeFi on Arbitrum",
        "chapters": [
            {
                "id": "intro-to-defi",
                "title": "Introduction to DeFi",
                "difficulty": "Beginner",
                "sections": [
                    ("what-is-defi", "theory", "What is DeFi?"),
                    ("centralized-vs-decentralized", "theory", "Centralized vs Decentralized Finance"),
                    ("arbitrum-in-defi", "theory", "Arbitrum's Role in DeFi"),
                    ("send-tokens-example", "code-example", "Token Transfer Code Examples"),
                    ("defi-basics-quiz", "quiz", "DeFi Fundamentals Quiz"),
                ],
            },
            {
                "id": "decentralized-exchanges",
                "title": "Decentralized Exchanges (DEXs)",
                "difficulty": "Intermediate",
                "sections": [
                    ("amm-vs-orderbook", "theory", "AMMs vs Order Books"),
                    ("token-swapping", "hands-on", "Token Swapping Concepts & Code"),
                    ("dex-challenge", "challenge", "Build a Swap Router"),
                ],
            },
        ],
    },
]


def _build_section(raw: tuple) -> Section:
    section_id, section_type, title, *rest = raw
    status = Availability(rest[0]) if rest else Availability.AVAILABLE
    return Section(id=section_id, type=SectionType(section_type), title=title, status=status)


def _build_module(raw: dict) -> CurriculumModule:
    chapters = tuple(
        Chapter(
            id=ch["id"],
            title=ch["title"],
            level=position,
            difficulty=Difficulty(ch.get("difficulty", "Beginner")),
            status=Availability(ch.get("status", "available")),
            sections=tuple(_build_section(s) for s in ch["sections"]),
        )
        for position, ch in enumerate(raw["chapters"], start=1)
    )
    return CurriculumModule(id=raw["id"], title=raw["title"], chapters=chapters)


MODULES: dict[str, CurriculumModule] = {raw["id"]: _build_module(raw) for raw in CURRICULUM_SEED_DATA}


def normalize_module_id(module_id: str) -> str:
    """Resolve aliases to the canonical module id."""
    return MODULE_ALIASES.get(module_id, module_id)


def get_module(module_id: str) -> CurriculumModule | None:
    """Look up a module by id or alias."""
    return MODULES.get(normalize_module_id(module_id))
