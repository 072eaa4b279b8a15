import mimetypes
from pathlib import Path

from formflow.config import get_settings
from formflow.models.responses import FileRef


def resolve_file_refs(tokens: list[str], upload_dir: Path | None = None) -> list[FileRef]:
    """Describe upload tokens. Tokens naming a file in the upload directory get its
    metadata; others are kept as opaque references."""
    upload_dir = upload_dir or get_settings().upload_dir
    refs = []
    for token in tokens:
        path = upload_dir / Path(token).name
        if path.is_file():
            mime_type, _ = mimetypes.guess_type(path.name)
            refs.append(FileRef(
                token=token,
                filename=path.name,
                original_name=path.name,
                mime_type=mime_type,
                size=path.stat().st_size,
                url=f"/uploads/{path.name}",
            ))
        else:
            refs.append(FileRef(token=token))
    return refs
