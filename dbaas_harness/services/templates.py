"""
Loading of a resource bundle from YAML templates.
"""
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Type

import yaml
from pydantic import ValidationError

from dbaas_harness.config.logging import get_logger
from dbaas_harness.config.settings import Settings, settings as default_settings
from dbaas_harness.exceptions import TemplateError
from dbaas_harness.models.resources import (
    CredentialRecord,
    DatabaseRecord,
    Record,
    ResourceBundle,
    ServerRegistration,
    VerificationWorkload,
)

logger = get_logger(__name__)


def load_record(record_cls: Type[Record], path: Path) -> Record:
    """
    Read one YAML manifest into a record.

    Raises:
        TemplateError: If the file cannot be read, parsed or validated
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            manifest = yaml.safe_load(f)
    except OSError as e:
        raise TemplateError(f"cannot read {path}: {e}", operation="load_record") from e
    except yaml.YAMLError as e:
        raise TemplateError(f"cannot parse {path}: {e}", operation="load_record") from e

    if not isinstance(manifest, dict):
        raise TemplateError(f"{path} does not hold a manifest mapping", operation="load_record")

    try:
        return record_cls.from_manifest(manifest)
    except ValidationError as e:
        raise TemplateError(f"invalid {record_cls.__name__} in {path}: {e}", operation="load_record") from e


def _template_files(app_settings: Settings) -> List[Tuple[str, Type[Record], str]]:
    return [
        ("database_credential", CredentialRecord, app_settings.db_secret_template),
        ("control_plane_credential", CredentialRecord, app_settings.ndb_secret_template),
        ("server_registration", ServerRegistration, app_settings.ndb_server_template),
        ("database", DatabaseRecord, app_settings.database_template),
        ("workload", VerificationWorkload, app_settings.app_pod_template),
    ]


def load_bundle(
    templates_dir: Optional[str] = None,
    app_settings: Optional[Settings] = None,
    strict: bool = True,
) -> ResourceBundle:
    """
    Load the five templates of a bundle from a directory.

    Every file is attempted; failures are collected and reported together.

    Args:
        templates_dir: Directory holding the templates (defaults to settings.templates_dir)
        app_settings: Settings naming the template files
        strict: Raise when any template fails; otherwise leave that member empty

    Raises:
        TemplateError: In strict mode, listing every failed template
    """
    app_settings = app_settings or default_settings
    directory = Path(templates_dir or app_settings.templates_dir)

    members: Dict[str, Record] = {}
    errors: List[str] = []
    for member, record_cls, filename in _template_files(app_settings):
        try:
            members[member] = load_record(record_cls, directory / filename)
        except TemplateError as e:
            logger.error(f"load_bundle() failed! {e.cause}", member=member)
            errors.append(e.cause)

    if errors and strict:
        raise TemplateError(
            "; ".join(errors),
            operation="load_bundle",
            details={"directory": str(directory), "errors": errors},
        )

    logger.info("bundle_loaded", directory=str(directory), members=sorted(members))
    return ResourceBundle(**members)
