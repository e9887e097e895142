"""auth/ -- Credential lifecycle and token revocation package for Quill.

Layer rule: auth/ imports only stdlib + third-party libraries.
It does NOT import from api/ or media/. Settings reach auth/ as explicit
config objects; auth/ never calls core.config.get_settings() itself.
api/ imports from auth/, not the other way around.
"""
