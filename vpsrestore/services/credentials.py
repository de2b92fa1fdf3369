"""Provisionnement du `rclone.conf` à partir d'un blob chiffré.

Le blob est au format `openssl enc -aes-256-cbc -pbkdf2` encodé en base64 :
`Salted__` + sel de 8 octets + données chiffrées, clé et IV dérivés par
PBKDF2-HMAC-SHA256 (10 000 itérations). Un blob produit par
`openssl enc -aes-256-cbc -pbkdf2 -salt | base64` est donc accepté tel quel.
"""
from __future__ import annotations

import base64
import binascii
import getpass
import logging
import os
from pathlib import Path
from typing import Mapping, Optional, Protocol

from cryptography.hazmat.primitives import hashes, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from vpsrestore.restore.errors import CredentialError
from vpsrestore.restore.models import CredentialBlob

RCLONE_CONF_PATH = Path("/root/.config/rclone/rclone.conf")
PASSPHRASE_ENV = "RCLONE_PASS_ENV"
TTY_PATH = "/dev/tty"

# rclone.conf chiffré livré avec l'outil (openssl enc -aes-256-cbc -pbkdf2 -salt | base64).
EMBEDDED_RCLONE_CONF_B64 = (
    "U2FsdGVkX1/pElR6Ss0bRAWfe0u1twsrFEWR0UFrnJCaeLexrFsL3wJV8KpvyGSjVNzAz3HDaStP"
    "VKbWLpRCQ06wvOuz3sG+GoItEegbjDaM05bTynIJdIv/zA2LG51Uc4jp4cEts1s9ETa/WZla+Boe"
    "yoI9WXqPbMu8uCSJKonviMpkSd/2CJdumZJk8HDSMrSsHUZN6C0ut//y5dPYMFs/ebwKaKhOZlUG"
    "3ej4MD4WbNaIcIl+xilI0nUZM7f+8VNgdRtideHe7cn0wvrDmAFMNrOmxUuM2vfbkz++8sG/aXXn"
    "zzVH4aM0sx3dNE4Mbr1qPck/UJFOVJmGeGC8SLu2T+3I76jbCaVMJ65kf4kLHSQ0wzTrMvAleNcz"
    "GctFhEaoEQQHigf5RcBrTy7CtFD9LjBfMviK0Z9GNwzGPLY+0yECgc+1ExL2rNIvWeh0RyLgG8oc"
    "l1ng2+UnBovvtoC5wvD6dzORtJzWBqwFUS20kSDt6cPZbYHQlWz4BEoBE4rFoTe4nJmnvBssT/qc"
    "tb1VVT+n92pgok+lHMwu+ZlUjAmVcuhWdIPsvYFl68sZDjJtg/DzGDdU+dFhVsZBf2RSwPqB5Gy6"
    "x4QQUTGTA4Bb7IY7XyfkDg7f+3FNWurwX8OTD8W05xxbIpQyrk6GKYoeGBenK61xNw1t+6Fmcw5h"
    "BVlErZTKmGKqYqlnC5oHkX+kV7Zim6nMn9TCzCCgf2uQKry7fd22cMOW6JOeAnU="
)

OPENSSL_MAGIC = b"Salted__"
SALT_SIZE = 8
KEY_SIZE = 32
IV_SIZE = 16
PBKDF2_ITERATIONS = 10_000


class PassphraseSource(Protocol):
    def read(self) -> str:
        ...


class StaticPassphrase:
    def __init__(self, value: str) -> None:
        self.value = value

    def read(self) -> str:
        return self.value


class EnvPassphrase:
    """Mot de passe pré-fourni pour un bootstrap non interactif."""

    def __init__(self, env: Mapping[str, str] | None = None, name: str = PASSPHRASE_ENV) -> None:
        self.env = env if env is not None else os.environ
        self.name = name

    def available(self) -> bool:
        return bool(self.env.get(self.name))

    def read(self) -> str:
        value = self.env.get(self.name)
        if not value:
            raise CredentialError(f"Variable {self.name} vide ou absente")
        return value


class TtyPassphrase:
    """Lit le mot de passe sur le terminal, même si stdin est un pipe (`curl ... | bash`)."""

    def __init__(self, prompt: str = "Enter rclone.conf password: ", tty_path: str = TTY_PATH) -> None:
        self.prompt = prompt
        self.tty_path = tty_path

    def read(self) -> str:
        if not os.access(self.tty_path, os.R_OK | os.W_OK):
            raise CredentialError(f"Aucun TTY disponible. Lancer en interactif ou définir {PASSPHRASE_ENV}.")
        # getpass ouvre /dev/tty directement et ne lit jamais stdin quand le terminal est accessible.
        return getpass.getpass(self.prompt)


def default_passphrase_source(env: Mapping[str, str] | None = None) -> PassphraseSource:
    env_source = EnvPassphrase(env)
    if env_source.available():
        return env_source
    return TtyPassphrase()


def _derive(passphrase: str, salt: bytes) -> tuple[bytes, bytes]:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE + IV_SIZE,
        salt=salt,
        iterations=PBKDF2_ITERATIONS,
    )
    material = kdf.derive(passphrase.encode("utf-8"))
    return material[:KEY_SIZE], material[KEY_SIZE:]


def seal_credentials(plaintext: bytes, passphrase: str, salt: Optional[bytes] = None) -> str:
    """Chiffre `plaintext` au format openssl (aes-256-cbc, pbkdf2) et renvoie le base64."""

    salt = salt or os.urandom(SALT_SIZE)
    key, iv = _derive(passphrase, salt)
    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    padded = padder.update(plaintext) + padder.finalize()
    encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    ciphertext = encryptor.update(padded) + encryptor.finalize()
    return base64.b64encode(OPENSSL_MAGIC + salt + ciphertext).decode("ascii")


def open_credentials(encrypted_payload: str, passphrase: str) -> bytes:
    """Déchiffre un blob openssl base64.

    Raises:
        CredentialError: blob corrompu ou mot de passe incorrect.
    """

    try:
        raw = base64.b64decode("".join(encrypted_payload.split()), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise CredentialError(f"Blob chiffré illisible (base64): {exc}") from exc

    if not raw.startswith(OPENSSL_MAGIC) or len(raw) < len(OPENSSL_MAGIC) + SALT_SIZE + IV_SIZE:
        raise CredentialError("Blob chiffré corrompu (en-tête openssl absent)")
    salt = raw[len(OPENSSL_MAGIC) : len(OPENSSL_MAGIC) + SALT_SIZE]
    ciphertext = raw[len(OPENSSL_MAGIC) + SALT_SIZE :]
    if len(ciphertext) % IV_SIZE:
        raise CredentialError("Blob chiffré corrompu (taille invalide)")

    key, iv = _derive(passphrase, salt)
    decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
    padded = decryptor.update(ciphertext) + decryptor.finalize()
    unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
    try:
        plaintext = unpadder.update(padded) + unpadder.finalize()
        # rclone.conf est un fichier texte : un padding valide par hasard donne des octets non UTF-8.
        plaintext.decode("utf-8")
    except ValueError as exc:
        raise CredentialError("Déchiffrement impossible (mauvais mot de passe ou données corrompues)") from exc
    return plaintext


def embedded_blob(target_path: Path = RCLONE_CONF_PATH) -> CredentialBlob:
    return CredentialBlob(encrypted_payload=EMBEDDED_RCLONE_CONF_B64, target_path=Path(target_path))


def load_blob(blob_file: Path, target_path: Path = RCLONE_CONF_PATH) -> CredentialBlob:
    """Blob fourni par l'opérateur, à la place du blob embarqué."""

    blob_path = Path(blob_file)
    if not blob_path.is_file():
        raise CredentialError(f"Blob chiffré introuvable: {blob_path}")
    return CredentialBlob(encrypted_payload=blob_path.read_text(encoding="ascii").strip(), target_path=Path(target_path))


class CredentialBootstrap:
    def __init__(
        self,
        blob: CredentialBlob,
        passphrase_source: PassphraseSource,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.blob = blob
        self.passphrase_source = passphrase_source
        self.logger = logger or logging.getLogger(__name__)

    def ensure(self) -> bool:
        """Écrit le fichier cible s'il est absent.

        Returns:
            True si le fichier a été écrit, False s'il existait déjà (aucun mot de passe demandé).

        Raises:
            CredentialError: mot de passe incorrect, blob corrompu ou TTY indisponible ;
                aucun fichier partiel n'est laissé.
        """

        target = self.blob.target_path
        if target.exists():
            self.logger.info("%s déjà présent, restauration ignorée", target)
            return False

        self.logger.info("%s absent, restauration depuis le blob chiffré", target)
        target.parent.mkdir(parents=True, exist_ok=True)
        os.chmod(target.parent, 0o700)

        passphrase = self.passphrase_source.read()
        # Déchiffrement complet en mémoire : un mauvais mot de passe n'écrit rien.
        plaintext = open_credentials(self.blob.encrypted_payload, passphrase)
        try:
            fd = os.open(target, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        except OSError as exc:
            raise CredentialError(f"Création de {target} impossible: {exc}") from exc
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(plaintext)
        except OSError as exc:
            _remove_partial(target)
            raise CredentialError(f"Écriture de {target} impossible: {exc}") from exc

        os.chmod(target, 0o600)
        self.logger.info("%s restauré", target)
        return True


def _remove_partial(target: Path) -> None:
    try:
        target.unlink()
    except FileNotFoundError:
        pass
