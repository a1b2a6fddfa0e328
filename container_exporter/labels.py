"""
Label sets for exported series.

Every series is keyed by a label set derived only from the identity fields of
the runtime object it describes, so the same container, interface or mount
maps to the same series on every cycle. All functions here are pure.
"""

import json
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from container_exporter.errors import LabelContractError

COMPOSE_PROJECT_LABEL = 'com.docker.compose.project'
COMPOSE_SERVICE_LABEL = 'com.docker.compose.service'
IMAGE_ID_PREFIX = 'sha256:'

SCHEMA_COMPOSE = 'compose'
SCHEMA_DETAILED = 'detailed'

KIND_CONTAINER = 'container'
KIND_NETWORK = 'network'
KIND_INFO = 'info'
KIND_FILESYSTEM = 'filesystem'

CONTAINER_LABELS = {
    SCHEMA_COMPOSE: [
        'container_name',
        'compose_project',
        'compose_service',
    ],
    SCHEMA_DETAILED: [
        'container_id',
        'container_name',
        'compose_project',
        'compose_service',
        'container_image_id',
        'container_image_name',
    ],
}

INFO_LABELS = [
    'container_id',
    'container_name',
    'compose_project',
    'compose_service',
    'container_image_id',
    'container_image_name',
    'container_state',
    'container_state_running',
    'container_state_paused',
    'container_state_restarting',
    'container_state_oomkilled',
    'container_state_dead',
]

FILESYSTEM_LABELS = ['name', 'path']


@dataclass(frozen=True)
class ContainerDescriptor:
    """A container as returned by the list API."""
    id: str
    names: List[str] = field(default_factory=list)
    labels: Dict[str, str] = field(default_factory=dict)
    image: str = ''
    image_id: str = ''
    state: str = ''

    @classmethod
    def from_api(cls, attrs: Dict) -> 'ContainerDescriptor':
        return cls(
            id=attrs.get('Id', ''),
            names=list(attrs.get('Names') or []),
            labels=dict(attrs.get('Labels') or {}),
            image=attrs.get('Image', ''),
            image_id=attrs.get('ImageID', ''),
            state=attrs.get('State', ''),
        )


@dataclass(frozen=True)
class ContainerState:
    """State flags from a full container inspect."""
    running: bool = False
    paused: bool = False
    restarting: bool = False
    oom_killed: bool = False
    dead: bool = False

    @classmethod
    def from_api(cls, attrs: Dict) -> 'ContainerState':
        state = attrs.get('State') or {}
        return cls(
            running=bool(state.get('Running', False)),
            paused=bool(state.get('Paused', False)),
            restarting=bool(state.get('Restarting', False)),
            oom_killed=bool(state.get('OOMKilled', False)),
            dead=bool(state.get('Dead', False)),
        )


def format_bool(value: bool) -> str:
    return 'true' if value else 'false'


def container_name(descriptor: ContainerDescriptor) -> str:
    """First container name without the leading '/' the API adds."""
    if not descriptor.names:
        return ''
    name = descriptor.names[0]
    if name.startswith('/'):
        name = name[1:]
    return name


def image_id(raw: str) -> str:
    """Image ID without its content-hash scheme prefix."""
    if raw.startswith(IMAGE_ID_PREFIX):
        return raw[len(IMAGE_ID_PREFIX):]
    return raw


def _require_id(descriptor: ContainerDescriptor) -> str:
    if not descriptor.id:
        raise LabelContractError(
            "container descriptor has no ID",
            operation='label',
            target=container_name(descriptor) or '?',
        )
    return descriptor.id


def _identity_fields(descriptor: ContainerDescriptor) -> Dict[str, str]:
    return {
        'container_id': _require_id(descriptor),
        'container_name': container_name(descriptor),
        'compose_project': descriptor.labels.get(COMPOSE_PROJECT_LABEL, ''),
        'compose_service': descriptor.labels.get(COMPOSE_SERVICE_LABEL, ''),
        'container_image_id': image_id(descriptor.image_id),
        'container_image_name': descriptor.image,
    }


def container_labels(descriptor: ContainerDescriptor, schema: str = SCHEMA_COMPOSE) -> Dict[str, str]:
    """
    Label set for the per-container series.

    Args:
        descriptor: Container from the list API
        schema: 'compose' or 'detailed'

    Returns:
        Label dictionary with the schema's field names
    """
    fields = _identity_fields(descriptor)
    return {name: fields[name] for name in CONTAINER_LABELS[schema]}


def network_labels(descriptor: ContainerDescriptor, interface: str,
                   schema: str = SCHEMA_COMPOSE) -> Dict[str, str]:
    """Label set for the per-interface series."""
    labels = container_labels(descriptor, schema)
    labels['interface'] = interface
    return labels


def info_labels(descriptor: ContainerDescriptor, state: ContainerState) -> Dict[str, str]:
    """Label set for the container_info series."""
    labels = _identity_fields(descriptor)
    labels.update({
        'container_state': descriptor.state,
        'container_state_running': format_bool(state.running),
        'container_state_paused': format_bool(state.paused),
        'container_state_restarting': format_bool(state.restarting),
        'container_state_oomkilled': format_bool(state.oom_killed),
        'container_state_dead': format_bool(state.dead),
    })
    return {name: labels[name] for name in INFO_LABELS}


def info_key(labels: Dict[str, str]) -> str:
    """Serialized label blob identifying one info series."""
    return json.dumps(labels, sort_keys=True)


def filesystem_labels(path: str, base_path: Optional[str] = None) -> Dict[str, str]:
    """
    Label set for a filesystem mount.

    The name is the directory's basename, or the path itself when the path
    is the scanned root.
    """
    name = os.path.basename(path.rstrip('/')) or path
    if base_path is not None and os.path.normpath(path) == os.path.normpath(base_path):
        name = path
    return {'name': name, 'path': path}


def label_names(kind: str, schema: str = SCHEMA_COMPOSE) -> List[str]:
    """Ordered label names for a series kind."""
    if kind == KIND_CONTAINER:
        return list(CONTAINER_LABELS[schema])
    if kind == KIND_NETWORK:
        return CONTAINER_LABELS[schema] + ['interface']
    if kind == KIND_INFO:
        return list(INFO_LABELS)
    if kind == KIND_FILESYSTEM:
        return list(FILESYSTEM_LABELS)
    raise ValueError(f"Unknown series kind: {kind}")
