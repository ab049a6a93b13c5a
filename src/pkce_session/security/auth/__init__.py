"""OAuth building blocks: PKCE, token sets and token endpoint exchanges."""

from pkce_session.security.auth.pkce import PKCEContext, PKCEGenerator, compute_code_challenge
from pkce_session.security.auth.token_exchange import TokenExchangeClient
from pkce_session.security.auth.token_parser import parse_token_response
from pkce_session.security.auth.token_set import (
    TokenSet,
    clear_token_set,
    load_id_token,
    load_token_set,
    save_token_set,
)

__all__ = [
    "PKCEContext",
    "PKCEGenerator",
    "TokenExchangeClient",
    "TokenSet",
    "clear_token_set",
    "compute_code_challenge",
    "load_id_token",
    "load_token_set",
    "parse_token_response",
    "save_token_set",
]
