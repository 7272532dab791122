import json
import time
from pathlib import Path
from typing import Optional

from jwcrypto import jwk, jws, jwt

ALGORITHMS = {
    ("OKP", "Ed25519"): "EdDSA",
    ("EC", "P-256"): "ES256",
    ("EC", "secp256k1"): "ES256K",
    ("RSA", None): "PS256",
}


def load_credential(path: Path) -> str:
    """Read the pre-signed credential fixture (a compact JWT)."""
    return Path(path).read_text(encoding="utf-8").strip()


def load_signing_key(path: Path) -> jwk.JWK:
    data = Path(path).read_bytes()
    if Path(path).suffix == ".pem":
        # from_pem sets kid to the key thumbprint.
        params = jwk.JWK.from_pem(data).export(private_key=True, as_dict=True)
        params.pop("kid", None)
        return jwk.JWK(**params)
    return jwk.JWK.from_json(data.decode("utf-8"))


def unverified_claims(token: str) -> Optional[dict]:
    """Return the JWT payload without checking its signature, or None if the
    token is not a compact JWS carrying a JSON object."""
    parsed = jws.JWS()
    try:
        parsed.deserialize(token)
        claims = json.loads(parsed.objects["payload"])
    except (jws.InvalidJWSObject, KeyError, TypeError, ValueError):
        return None
    return claims if isinstance(claims, dict) else None


def token_nonce(token: str) -> Optional[str]:
    claims = unverified_claims(token) or {}
    nonce = claims.get("nonce")
    return nonce if isinstance(nonce, str) else None


def presentation_summary(vp_token: str) -> dict:
    """Pull the holder, nonce and credential types out of a VP JWT."""
    claims = unverified_claims(vp_token)
    if claims is None:
        return {}

    types = []
    vp = claims.get("vp") or {}
    for vc_jwt in vp.get("verifiableCredential", []) if isinstance(vp, dict) else []:
        if not isinstance(vc_jwt, str):
            continue
        vc = (unverified_claims(vc_jwt) or {}).get("vc") or {}
        vc_types = vc.get("type", []) if isinstance(vc, dict) else []
        if isinstance(vc_types, str):
            vc_types = [vc_types]
        types.extend(vc_types)

    return {
        "holder": claims.get("iss"),
        "nonce": claims.get("nonce"),
        "credential_types": types,
    }


def credential_subject(credential: str) -> Optional[str]:
    claims = unverified_claims(credential) or {}
    return claims.get("sub")


def personalize(
    credential: str, subject_id: str, key: jwk.JWK, key_id: Optional[str] = None
) -> str:
    """Re-issue the fixture's claims for `subject_id`, signed with `key`."""
    claims = unverified_claims(credential)
    if claims is None:
        raise ValueError("Credential fixture is not a JWT")

    claims["sub"] = subject_id
    claims["iat"] = int(time.time())

    vc = claims.get("vc")
    if isinstance(vc, dict):
        subject = vc.get("credentialSubject")
        if isinstance(subject, list):
            for entry in subject:
                entry["id"] = subject_id
        elif isinstance(subject, dict):
            subject["id"] = subject_id

    public = key.export_public(as_dict=True)
    kty = public.get("kty")
    alg = ALGORITHMS.get((kty, public.get("crv") if kty != "RSA" else None))
    if alg is None:
        raise ValueError(f"Unsupported signing key type {kty}")

    header = {"alg": alg, "typ": "JWT"}
    if key_id:
        header["kid"] = key_id
    elif public.get("kid"):
        header["kid"] = public["kid"]
    elif claims.get("iss"):
        header["kid"] = f"{claims['iss']}#{key.thumbprint()}"

    token = jwt.JWT(header=header, claims=claims)
    token.make_signed_token(key)
    return token.serialize()
