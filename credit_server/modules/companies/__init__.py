from .models import Application, Company
from .service import CompanyService

__all__ = ["Application", "Company", "CompanyService"]
