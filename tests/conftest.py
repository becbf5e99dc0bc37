from __future__ import annotations

import pytest


@pytest.fixture
def sample_export() -> dict:
    return {
        "start_time": "2025-01-01T00:00:00Z",
        "total": {"clients": 100, "distinct_entities": 60, "non_entity_tokens": 40},
        "by_namespace": [
            {
                "namespace_path": "",
                "namespace_id": "root",
                "counts": {"clients": 60, "entity_clients": 40, "non_entity_clients": 20},
                "mounts": [
                    {"mount_path": "auth/okta_oidc/", "mount_type": "oidc/", "counts": {"clients": 53}},
                    {"mount_path": "auth/token/", "mount_type": "token/", "counts": {"clients": 7}},
                ],
            },
            {
                "namespace_path": "prod/payments/",
                "namespace_id": "p1",
                "counts": {"clients": 25, "distinct_entities": 15, "non_entity_tokens": 10},
                "mounts": [
                    {"mount_path": "auth/approle/", "mount_type": "approle/", "counts": {"clients": 25}},
                    {"mount_path": "no mount accessor", "mount_type": "deleted mount", "counts": {"clients": 4}},
                ],
            },
            {
                "namespace_path": "dev/sandbox-a/",
                "counts": {"clients": 10, "entity_clients": 5, "non_entity_clients": 5},
                "mounts": [{"mount_path": "auth/userpass/", "mount_type": "userpass/", "counts": {"clients": 10}}],
            },
            {
                "namespace_path": "deleted-namespace-1/",
                "counts": {"clients": 5, "entity_clients": 0, "non_entity_clients": 5},
            },
        ],
        "months": [
            {"timestamp": "2024-12-01T00:00:00Z", "counts": {"clients": 40}, "new_clients": {"counts": {"clients": 10}}},
            {"timestamp": "2024-11-01T00:00:00Z", "counts": {"clients": 30}, "new_clients": {"counts": {"clients": 30}}},
        ],
    }


@pytest.fixture
def filter_doc() -> dict:
    return {
        "mode": "exclude",
        "exclude_namespaces": ["^deleted", "^dev/"],
        "non_production_namespaces": ["^dev/", "^deleted"],
    }
