"""
Per-file tagging orchestration.
"""

import threading
from typing import AbstractSet, Dict, List
from PIL import Image
from .exceptions import CommitError, DecodeError, NetworkError, ServiceNotFoundError
from .hydrus_client import HydrusClient
from .interrogator import Interrogator
from .logging import get_logger
from .models import TagCommit
from .postprocessing import KAOMOJIS, filter_and_process_tags, get_rating
from .preprocessing import decode_image


UNTAGGED_IMAGES_QUERY = ["system:untagged", "system:filetype is image"]


class Tagger:
    """Turns a file hash into a committed set of tags.

    Holds only shared, read-only handles and is safe to call from many
    threads at once.
    """

    def __init__(
        self,
        client: HydrusClient,
        interrogator: Interrogator,
        threshold: float,
        kaomojis: AbstractSet[str] = KAOMOJIS,
    ):
        self.logger = get_logger("tagger")
        self.client = client
        self.interrogator = interrogator
        self.threshold = threshold
        self.kaomojis = kaomojis
        self._service_keys: Dict[str, str] = {}
        self._service_lock = threading.Lock()

    def _load_image(self, file_hash: str) -> Image.Image:
        """Fetch and decode a file, falling back to Hydrus' render."""
        data = self.client.get_file(file_hash)
        try:
            return decode_image(data)
        except DecodeError as original_error:
            self.logger.warning(f"⚠️  Failed decoding original of {file_hash}, falling back to Hydrus render")
            try:
                return decode_image(self.client.get_render(file_hash))
            except (DecodeError, NetworkError) as e:
                raise DecodeError(
                    f"Failed to decode {file_hash}: {original_error}; render fallback: {e}"
                ) from e

    def tag_image(self, service_key: str, file_hash: str, dry_run: bool = False) -> List[str]:
        """Interrogate one file and add the resulting tags under ``service_key``.

        With ``dry_run`` the whole pipeline runs but nothing is committed.
        Returns the tags that were (or would have been) added.
        """
        self.logger.debug(f"Tagging {file_hash}")

        image = self._load_image(file_hash)
        ratings, tags = self.interrogator.interrogate(image)

        filtered_tags = filter_and_process_tags(tags, self.threshold, self.kaomojis)
        if ratings is not None:
            filtered_tags.append(get_rating(ratings))

        commit = TagCommit.for_hash(file_hash, service_key, filtered_tags)
        self.logger.debug(f"Tags to be added: {commit.service_keys_to_tags}")

        if not dry_run:
            try:
                self.client.add_tags(commit)
            except NetworkError as e:
                raise CommitError(f"Failed adding tags to {file_hash}: {e}") from e

        return filtered_tags

    def get_untagged_images(self, service_key: str) -> List[str]:
        """Hashes of images with no tags on ``service_key``."""
        hashes = self.client.search_file_hashes(UNTAGGED_IMAGES_QUERY, tag_service_key=service_key)
        self.logger.debug(f"Found {len(hashes)} untagged images")
        return hashes

    def resolve_tag_service_key(self, name: str) -> str:
        """Resolve a tag service's display name to its key, once per name."""
        with self._service_lock:
            if name in self._service_keys:
                return self._service_keys[name]

            services = self.client.get_services()
            for key, service_name in services.items():
                if service_name == name:
                    self._service_keys[name] = key
                    self.logger.info(f"🏷️  Using tag service '{name}' ({key})")
                    return key

        raise ServiceNotFoundError(f"Could not find tag service {name}")
