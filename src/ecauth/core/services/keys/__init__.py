from .key_store import SigningKey, SigningKeyStore, generate_rsa_key_pair

__all__ = ["SigningKey", "SigningKeyStore", "generate_rsa_key_pair"]
