"""Fixed values of the login flow. These are not configurable."""

# Session token lifetime: exp is always iat + this value
SESSION_LIFETIME_SECONDS = 14 * 24 * 3600

# Correlation cookie lifetime for one login attempt
LOGIN_COOKIE_MAX_AGE_SECONDS = 30 * 60

SESSION_TOKEN_ALGORITHM = "HS256"

AUTHORIZATION_SCOPE = "openid email profile"
RESPONSE_MODE = "form_post"

# Accepted ID token signature algorithms
ID_TOKEN_ALGORITHMS = ["RS256"]

# Clock skew tolerance for ID token exp/iat/nbf checks
ID_TOKEN_LEEWAY_SECONDS = 10
