# slack_gateway/auth/__init__.py
from .jwt import create_access_token, decode_access_token
from .tokens import authenticate_bearer, extract_bearer, register_slack_token
