from webstead.models.webstead import Webstead

ACTOR_CONTENT_TYPE = 'application/ld+json; profile="https://www.w3.org/ns/activitystreams"'

CONTEXT = [
    "https://www.w3.org/ns/activitystreams",
    "https://w3id.org/security/v1",
]


def build_actor_document(webstead: Webstead) -> dict:
    """Person do webstead. Campos vazios são omitidos, nunca enviados como null."""
    actor_uri = webstead.actor_uri

    document = {
        "@context": CONTEXT,
        "type": "Person",
        "id": actor_uri,
        "preferredUsername": webstead.subdomain,
        "name": webstead.display_name,
        "summary": webstead.bio,
        "url": webstead.url,
        "inbox": f"{actor_uri}/inbox",
        "outbox": f"{actor_uri}/outbox",
        "publicKey": {
            "id": webstead.key_id,
            "owner": actor_uri,
            "publicKeyPem": webstead.public_key,
        },
    }
    document["publicKey"] = _compact(document["publicKey"])
    return _compact(document)


def _compact(data: dict) -> dict:
    return {key: value for key, value in data.items() if value not in (None, "", {}, [])}
