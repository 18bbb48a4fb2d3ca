from qrlogin.api.endpoints.login.login_endpoint import routes as login_routes

routes = [
    *login_routes,
]

__all__ = ["routes"]
