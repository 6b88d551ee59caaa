from __future__ import annotations

from copy import deepcopy

DEFAULT_CONFIG = {
    "database": {
        "url": "sqlite:///data/marketplace.sqlite",
        "echo": False,
    },
    "email": {
        "smtp_server": "",
        "smtp_port": 465,
        "sender_email": "",
        "sender_password": "",
        "timeout": 30,
    },
    "report": {
        "public_base_url": "https://www.pharmaconnect-dz.com",
        "currency": "DZD",
        "placeholder": "N/A",
        "operator_label": "Admin",
        "date_format": "%d/%m/%Y",
        "datetime_format": "%d/%m/%Y %H:%M",
        "email_subject": "Sourcing request results: {title}",
    },
    "analytics": {
        "timezone": "Africa/Algiers",
        "excluded_account_ids": [],
        "recent_limit": 10,
    },
    "paths": {
        "data_dir": "data",
        "log_dir": "data/logs",
        "export_dir": "data/exports",
    },
    "logging": {"level": "INFO"},
}


def default_config_copy() -> dict:
    return deepcopy(DEFAULT_CONFIG)
