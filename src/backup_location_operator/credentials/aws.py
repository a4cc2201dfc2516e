"""AWS shared-credentials (ini) parsing."""

from __future__ import annotations

import configparser
import re

from ..constants import DEFAULT_AWS_PROFILE
from ..exceptions import CredentialError
from ..models import AWSCredential

_SECTION_RE = re.compile(r"^\s*\[\s*(?:profile\s+)?([^\]]+?)\s*\]\s*$")
_REGION_RE = re.compile(r"^\s*region\s*=")


def _section_name(header: str) -> str:
    name = header.strip()
    if name.startswith("profile "):
        name = name[len("profile "):].strip()
    return name


def parse_aws_credentials(content: str, profile: str = DEFAULT_AWS_PROFILE) -> AWSCredential:
    """Parse an AWS credentials file and return the requested profile.

    Both ``[name]`` and ``[profile name]`` section headers are accepted.

    Args:
        content: Text of the credentials file
        profile: Profile to extract

    Returns:
        Normalized AWS credential for the profile

    Raises:
        CredentialError: If the content is empty, not valid ini, lacks the profile,
            or the profile holds neither static keys nor a web identity role
    """
    if not content.strip():
        raise CredentialError("error parsing AWS secret: credentials are empty")

    parser = configparser.ConfigParser(interpolation=None, strict=False)
    try:
        parser.read_string(content)
    except configparser.Error as e:
        raise CredentialError(f"error parsing AWS secret: {e}") from e

    sections = {_section_name(section): section for section in parser.sections()}
    if profile not in sections:
        raise CredentialError(f"error parsing AWS secret: profile {profile} not found")

    values = parser[sections[profile]]
    has_static = bool(values.get("aws_access_key_id") and values.get("aws_secret_access_key"))
    has_sts = bool(values.get("role_arn") and values.get("web_identity_token_file"))
    if not (has_static or has_sts):
        raise CredentialError(
            f"error parsing AWS secret: profile {profile} has no recognized keys, expected "
            "aws_access_key_id and aws_secret_access_key, or role_arn and web_identity_token_file"
        )

    return AWSCredential(
        profile=profile,
        access_key_id=values.get("aws_access_key_id"),
        secret_access_key=values.get("aws_secret_access_key"),
        session_token=values.get("aws_session_token"),
        role_arn=values.get("role_arn"),
        web_identity_token_file=values.get("web_identity_token_file"),
        region=values.get("region"),
    )


def patch_aws_region(content: str, profile: str, region: str) -> str:
    """Set ``region = <region>`` inside one profile section of a credentials file.

    An existing region line in the section is replaced; otherwise the line is
    appended at the end of the section. Content without that profile is
    returned unchanged.
    """
    lines = content.splitlines()
    result: list[str] = []
    in_section = False
    found_section = False
    patched = False

    for line in lines:
        header = _SECTION_RE.match(line)
        if header:
            if in_section and not patched:
                result.append(f"region = {region}")
                patched = True
            in_section = header.group(1) == profile
            found_section = found_section or in_section
            result.append(line)
            continue

        if in_section and _REGION_RE.match(line):
            if not patched:
                result.append(f"region = {region}")
                patched = True
            continue

        result.append(line)

    if in_section and not patched:
        result.append(f"region = {region}")
        patched = True

    if not found_section:
        return content

    patched_content = "\n".join(result)
    if content.endswith("\n"):
        patched_content += "\n"
    return patched_content
