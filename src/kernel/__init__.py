"""
Kernel Layer

Foundational account components:
- Identity records (users)
- Identity Core (password hashing, token issuance, session lifecycle)
- Media storage for avatars and cover images
- Domain error taxonomy

Invariants:
- A user's stored password hash is never the plaintext
- At most one refresh token per user can rotate the session
"""

from src.kernel.models import User

__all__ = [
    "User",
]
