"""Address helpers for the service's receiving accounts."""

from __future__ import annotations

from solders.pubkey import Pubkey

# SPL Token Program IDs
TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
TOKEN_2022_PROGRAM_ID = "TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb"
ASSOCIATED_TOKEN_PROGRAM_ID = "ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL"


def derive_associated_token_address(
    owner: str, mint: str, token_program_id: str = TOKEN_PROGRAM_ID
) -> str:
    """
    Derives the Associated Token Account (ATA) address for a given owner and mint.

    ATAs are deterministic addresses derived from the owner's wallet and token mint,
    so stable-asset payments always land in the same sub-account.

    Formula:
        find_program_address([owner, token_program, mint], ASSOCIATED_TOKEN_PROGRAM_ID)
    """
    seeds = [
        bytes(Pubkey.from_string(owner)),
        bytes(Pubkey.from_string(token_program_id)),
        bytes(Pubkey.from_string(mint)),
    ]
    ata, _ = Pubkey.find_program_address(
        seeds, Pubkey.from_string(ASSOCIATED_TOKEN_PROGRAM_ID)
    )
    return str(ata)


def is_valid_address(address: str) -> bool:
    try:
        Pubkey.from_string(address)
    except ValueError:
        return False
    return True
