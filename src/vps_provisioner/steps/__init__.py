from .accounts import AppUserStep, DirectoryLayoutStep
from .base import RegistryError, Step, StepRegistry
from .database import ClientAuthStep, DatabaseStep, GrantStep, RoleStep
from .files import SiteEnableStep, TemplateFileStep
from .firewall import FirewallStep
from .packages import GlobalNpmStep, NodeRuntimeStep, PackageStep, SystemUpgradeStep
from .. import renderer
from ..config import ProvisioningConfig


def build_steps(config: ProvisioningConfig) -> StepRegistry:
    """The provisioning steps for one Node.js application host, in run order."""
    return StepRegistry(
        [
            SystemUpgradeStep(),
            PackageStep(
                "essential-tools",
                config.essential_packages,
                description="Install essential command line tools",
                depends_on=["system-upgrade"],
            ),
            NodeRuntimeStep(config.node_version, depends_on=["essential-tools"]),
            PackageStep(
                "postgresql",
                ["postgresql", "postgresql-contrib"],
                services=["postgresql"],
                depends_on=["system-upgrade"],
            ),
            DatabaseStep(config.db_name, depends_on=["postgresql"]),
            RoleStep(config.db_user, config.db_password, depends_on=["postgresql"]),
            GrantStep(config.db_name, config.db_user, depends_on=["postgres-database", "postgres-role"]),
            ClientAuthStep(config.db_user, depends_on=["postgres-role"]),
            PackageStep("nginx", ["nginx"], services=["nginx"], depends_on=["system-upgrade"]),
            GlobalNpmStep("pm2", "pm2", depends_on=["nodejs"]),
            AppUserStep(config.app_user),
            DirectoryLayoutStep(
                config.app_user,
                [config.app_dir, config.logs_dir, config.backups_dir, config.app_backups_dir],
                depends_on=["app-user"],
            ),
            FirewallStep(depends_on=["nginx"]),
            TemplateFileStep(renderer.ENV_FILE, config, create_only=True, depends_on=["app-directories"]),
            TemplateFileStep(renderer.PM2_ECOSYSTEM, config, depends_on=["app-directories"]),
            TemplateFileStep(
                renderer.NGINX_SITE,
                config,
                validate_nginx=True,
                notify="nginx",
                depends_on=["nginx"],
            ),
            SiteEnableStep(config.site_name, depends_on=["nginx-site"]),
            TemplateFileStep(renderer.PGPASS, config, depends_on=["app-user"]),
            TemplateFileStep(renderer.BACKUP_SCRIPT, config, depends_on=["app-user"]),
            TemplateFileStep(renderer.STATUS_SCRIPT, config, depends_on=["app-user"]),
            TemplateFileStep(renderer.UPDATE_SCRIPT, config, depends_on=["app-user"]),
            TemplateFileStep(renderer.LOGROTATE, config, depends_on=["app-directories"]),
            PackageStep("fail2ban", ["fail2ban"], services=["fail2ban"], depends_on=["system-upgrade"]),
            TemplateFileStep(
                renderer.FAIL2BAN_JAIL,
                config,
                notify="fail2ban",
                restart=True,
                depends_on=["fail2ban"],
            ),
        ]
    )


__all__ = [
    "AppUserStep",
    "ClientAuthStep",
    "DatabaseStep",
    "DirectoryLayoutStep",
    "FirewallStep",
    "GlobalNpmStep",
    "GrantStep",
    "NodeRuntimeStep",
    "PackageStep",
    "RegistryError",
    "RoleStep",
    "SiteEnableStep",
    "Step",
    "StepRegistry",
    "SystemUpgradeStep",
    "TemplateFileStep",
    "build_steps",
]
