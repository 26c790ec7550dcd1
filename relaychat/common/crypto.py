import binascii

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

MIN_RSA_BITS = 2048


def _oaep() -> padding.OAEP:
    # Randomized padding: equal plaintexts never give equal ciphertexts
    return padding.OAEP(mgf=padding.MGF1(algorithm=hashes.SHA256()),
                        algorithm=hashes.SHA256(),
                        label=None)


def rsa_generate(bits: int = MIN_RSA_BITS) -> rsa.RSAPrivateKey:
    '''
    The function generates an RSA private key.
        Input: key size in bits (default 2048, smaller sizes are refused)
        Output: private key object
    '''
    if bits < MIN_RSA_BITS:
        raise ValueError(f"RSA key size must be at least {MIN_RSA_BITS} bits, got {bits}")
    return rsa.generate_private_key(public_exponent=65537, key_size=bits)


def rsa_public_pem(pub: rsa.RSAPublicKey) -> str:
    '''
    The function returns the PEM text of a public key.
    Input:
        - RSA public key object
    Output:
        - PEM string (SubjectPublicKeyInfo)
    '''
    pem = pub.public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo
    )
    return pem.decode()


def rsa_load_public(pub_pem: str) -> rsa.RSAPublicKey:
    '''
    This function parses a PEM public key as advertised through the relay.
    Raises ValueError when the text is not an RSA public key.
    '''
    try:
        key = serialization.load_pem_public_key(pub_pem.encode())
    except (TypeError, ValueError, AttributeError, UnicodeEncodeError) as e:
        raise ValueError(f"not a PEM public key: {e}") from e
    if not isinstance(key, rsa.RSAPublicKey):
        raise ValueError("public key is not an RSA key")
    return key


def rsa_fingerprint(pub: rsa.RSAPublicKey) -> str:
    ''' SHA-256 over the DER form of the public key, as hex '''
    der = pub.public_bytes(
        serialization.Encoding.DER,
        serialization.PublicFormat.SubjectPublicKeyInfo
    )
    return sha256_digest(der).hex()


def rsa_max_plaintext(pub: rsa.RSAPublicKey) -> int:
    '''Largest plaintext (bytes) one OAEP/SHA-256 block can carry for this key'''
    return pub.key_size // 8 - 2 * hashes.SHA256.digest_size - 2


def rsa_encrypt(pub: rsa.RSAPublicKey, data: bytes) -> bytes:
    '''
    This function encrypts bytes for the owner of a public key.
    Input:
        - pub: recipient's RSA public key object
        - data: plaintext bytes, at most rsa_max_plaintext(pub) long
    Output: ciphertext bytes
    '''
    return pub.encrypt(data, _oaep())


def rsa_decrypt(priv: rsa.RSAPrivateKey, ciphertext: bytes) -> bytes:
    '''
    This function decrypts an OAEP ciphertext using the recipient's RSA private key.
    Raises ValueError when the ciphertext was not produced for this key or was altered.
    '''
    return priv.decrypt(ciphertext, _oaep())


def rsa_sign(priv: rsa.RSAPrivateKey, data: bytes) -> bytes:
    '''Deterministic SHA-256 hash-then-sign (PKCS#1 v1.5)'''
    return priv.sign(data, padding.PKCS1v15(), hashes.SHA256())


def rsa_verify(pub: rsa.RSAPublicKey, data: bytes, signature: bytes) -> bool:
    '''
    This function checks a signature made by rsa_sign.
    Input:
        - pub: public key of the claimed signer
        - data: the signed bytes
        - signature: signature bytes
    Output: True if the signature matches, False otherwise
    '''
    try:
        pub.verify(signature, data, padding.PKCS1v15(), hashes.SHA256())
    except InvalidSignature:
        return False
    return True


def sha256_digest(data: bytes) -> bytes:
    ''' This function returns the 32-byte SHA-256 digest of data '''
    h = hashes.Hash(hashes.SHA256())
    h.update(data)
    return h.finalize()


def hexd(s: str) -> bytes:
    ''' This function decodes a hex string to bytes, raising ValueError on bad input '''
    try:
        return bytes.fromhex(s)
    except (TypeError, ValueError, binascii.Error) as e:
        raise ValueError(f"invalid hex: {e}") from e
