from flask_talisman import Talisman

def init_security(app):
    """
    Production/staging security headers. The app only serves JSON and PDF
    attachments, so the CSP denies everything that is not same-origin.
    """
    csp = {
        "default-src": ["'none'"],
        "img-src":     ["'self'"],
        "frame-ancestors": ["'none'"],
        "base-uri":    ["'none'"],
        "form-action": ["'none'"],
    }

    Talisman(
        app,
        content_security_policy=csp,
        force_https=True,
        strict_transport_security=True,
        session_cookie_secure=True,
        frame_options="DENY",
        referrer_policy="no-referrer",
    )
