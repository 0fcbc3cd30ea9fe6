import os
import requests
from jose import jwk, jwt
from jose.utils import base64url_decode
from flask import request, g, jsonify
from functools import wraps

from careconnect.roles import normalize_role

COGNITO_POOL_ID = os.getenv("COGNITO_POOL_ID") or os.getenv("COGNITO_USER_POOL_ID")
COGNITO_APP_CLIENT_ID = os.getenv("COGNITO_APP_CLIENT_ID") or os.getenv("COGNITO_CLIENT_ID")
AWS_REGION = os.getenv("COGNITO_REGION") or os.getenv("AWS_REGION", "ap-southeast-2")
JWKS_URL = f"https://cognito-idp.{AWS_REGION}.amazonaws.com/{COGNITO_POOL_ID}/.well-known/jwks.json"

_jwks = None

class AuthError(Exception):
    pass

def get_jwks():
    global _jwks
    if _jwks is None:
        r = requests.get(JWKS_URL, timeout=5)
        r.raise_for_status()
        _jwks = r.json()
    return _jwks

def verify_jwt(token):
    jwks = get_jwks()
    headers = jwt.get_unverified_header(token)
    kid = headers.get('kid')
    key = next((k for k in jwks['keys'] if k['kid'] == kid), None)
    if not key:
        raise AuthError("Public key not found in jwks")
    public_key = jwk.construct(key)
    message, encoded_sig = token.rsplit('.', 1)
    decoded_sig = base64url_decode(encoded_sig.encode('utf-8'))
    if not public_key.verify(message.encode("utf8"), decoded_sig):
        raise AuthError("Signature verification failed")
    claims = jwt.get_unverified_claims(token)
    if COGNITO_APP_CLIENT_ID and claims.get('aud') != COGNITO_APP_CLIENT_ID:
        raise AuthError("Invalid audience")
    return claims

def _tenant_from_claims(claims):
    tenant_id = claims.get("custom:tenant_id") or claims.get("tenant_id")
    try:
        return int(tenant_id) if tenant_id is not None else None
    except (TypeError, ValueError):
        return None

def role_required(*allowed_roles):
    """Verify the bearer token and require one of ``allowed_roles`` in its claims"""
    allowed = {normalize_role(r) for r in allowed_roles}

    def decorator(f):
        @wraps(f)
        def decorated(*args, **kwargs):
            auth = request.headers.get("Authorization", None)
            if not auth:
                return jsonify({"message": "Missing Authorization header"}), 401
            token = auth.split(" ")[1] if " " in auth else auth
            try:
                claims = verify_jwt(token)
            except Exception as e:
                return jsonify({"message": f"Token invalid: {str(e)}"}), 401

            role = normalize_role(claims.get("custom:role") or claims.get("role"))
            if role not in allowed:
                return jsonify({"message": "Insufficient role for this resource"}), 403

            g.claims = claims
            g.role = role
            g.tenant_id = _tenant_from_claims(claims)
            return f(*args, **kwargs)
        return decorated
    return decorator
