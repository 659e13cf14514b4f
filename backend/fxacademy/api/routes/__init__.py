# API routes
from fxacademy.api.routes import admin
from fxacademy.api.routes import auth
from fxacademy.api.routes import billing
from fxacademy.api.routes import health
from fxacademy.api.routes import owner
from fxacademy.api.routes import student
from fxacademy.api.routes import users
from fxacademy.api.routes import webhooks_paystack

__all__ = ["admin", "auth", "billing", "health", "owner", "student", "users", "webhooks_paystack"]
