from rentalhub.models.backup import DatabaseBackup
from rentalhub.models.client import Client
from rentalhub.models.property import Property
from rentalhub.models.rental import Rental
from rentalhub.models.site_setting import SiteSetting

__all__ = ["Property", "Client", "Rental", "DatabaseBackup", "SiteSetting"]
