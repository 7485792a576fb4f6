PARSER_VERSION = "mamflow.ingest/0.1.0"

VIDEO_FORMAT_URN = "urn:x-nmos:format:video"
AUDIO_FORMAT_URN = "urn:x-nmos:format:audio"
DATA_FORMAT_URN = "urn:x-nmos:format:data"


def format_urn_for(media_type: str) -> str:
    """Map an asset media type onto the registry's format URN."""
    if media_type == "video":
        return VIDEO_FORMAT_URN
    if media_type == "audio":
        return AUDIO_FORMAT_URN
    return DATA_FORMAT_URN
