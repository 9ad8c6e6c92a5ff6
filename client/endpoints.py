AUTH_LOGIN = "/v1/api/auth/login"
AUTH_SIGNUP = "/v1/api/auth/signup"
AUTH_GOOGLE = "/v1/api/auth/google"
AUTH_LOGOUT = "/v1/api/auth/logout"
AUTH_TOKEN_REFRESH = "/v1/api/auth/token/refresh"
AUTH_ME = "/v1/api/auth/me"
AUTH_PROFILE = "/v1/api/auth/profile"
AUTH_PASSWORD = "/v1/api/auth/password"
LINKS = "/v1/api/links"
