"""
企业微信消息加解密

AES-256-CBC，IV 取密钥前16字节，按32字节补位（平台约定，不能改成随机IV）。
明文结构：random(16B) + msg_len(4B, 网络字节序) + msg + corp_id
参考文档：https://developer.work.weixin.qq.com/document/path/90968
"""
import base64
import binascii
import os
import struct

from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from models.wecom import DecryptedEnvelope
from utils.exceptions import DecryptionError

BLOCK_SIZE = 32
RANDOM_LENGTH = 16
LENGTH_PREFIX = 4
AES_KEY_LENGTH = 32
ENCODING_AES_KEY_LENGTH = 43


def derive_key(encoding_aes_key: str) -> bytes:
    """EncodingAESKey 补 "=" 后 base64 解码得到32字节AES密钥"""
    if not encoding_aes_key or len(encoding_aes_key) != ENCODING_AES_KEY_LENGTH:
        raise DecryptionError("EncodingAESKey must be 43 characters")
    try:
        key = base64.b64decode(encoding_aes_key + "=", validate=True)
    except (binascii.Error, ValueError):
        raise DecryptionError("EncodingAESKey is not valid base64")
    if len(key) != AES_KEY_LENGTH:
        raise DecryptionError("EncodingAESKey does not decode to 32 bytes")
    return key


def _cipher(key: bytes) -> Cipher:
    return Cipher(algorithms.AES(key), modes.CBC(key[:16]), backend=default_backend())


def decrypt(encoding_aes_key: str, ciphertext: str) -> DecryptedEnvelope:
    """
    解密回调消息

    Args:
        encoding_aes_key: 应用回调配置中的EncodingAESKey
        ciphertext: base64编码的密文（echostr 或 Encrypt 字段）

    Returns:
        DecryptedEnvelope，调用方必须再校验 corp_id

    Raises:
        DecryptionError: base64/密钥/补位/长度任一不合法
    """
    key = derive_key(encoding_aes_key)

    try:
        encrypted = base64.b64decode(ciphertext, validate=True)
    except (binascii.Error, ValueError):
        raise DecryptionError("ciphertext is not valid base64")

    if not encrypted or len(encrypted) % 16:
        raise DecryptionError("ciphertext length is not a multiple of the AES block size")

    decryptor = _cipher(key).decryptor()
    plain = decryptor.update(encrypted) + decryptor.finalize()

    # 去除补位：补位值即补位长度，且每个补位字节都必须等于该值
    unpadder = padding.PKCS7(BLOCK_SIZE * 8).unpadder()
    try:
        plain = unpadder.update(plain) + unpadder.finalize()
    except ValueError:
        raise DecryptionError("invalid padding")

    if len(plain) < RANDOM_LENGTH + LENGTH_PREFIX:
        raise DecryptionError("plaintext too short")

    random_padding = plain[:RANDOM_LENGTH]
    (msg_len,) = struct.unpack(">I", plain[RANDOM_LENGTH:RANDOM_LENGTH + LENGTH_PREFIX])
    body = plain[RANDOM_LENGTH + LENGTH_PREFIX:]
    if msg_len > len(body):
        raise DecryptionError("message length exceeds buffer")

    try:
        corp_id = body[msg_len:].decode("utf-8")
    except UnicodeDecodeError:
        raise DecryptionError("corp id is not valid utf-8")

    return DecryptedEnvelope(
        random_padding=random_padding,
        message_length=msg_len,
        message=body[:msg_len],
        corp_id=corp_id,
    )


def encrypt(encoding_aes_key: str, message: str, corp_id: str) -> str:
    """
    加密消息（被动回复 / 测试用）

    Args:
        encoding_aes_key: 应用回调配置中的EncodingAESKey
        message: 明文消息
        corp_id: 企业ID

    Returns:
        base64编码的密文
    """
    key = derive_key(encoding_aes_key)

    msg_bytes = message.encode("utf-8")
    plain = (
        os.urandom(RANDOM_LENGTH)
        + struct.pack(">I", len(msg_bytes))
        + msg_bytes
        + corp_id.encode("utf-8")
    )

    # 32字节补位，补位值即补位长度
    padder = padding.PKCS7(BLOCK_SIZE * 8).padder()
    padded = padder.update(plain) + padder.finalize()

    encryptor = _cipher(key).encryptor()
    encrypted = encryptor.update(padded) + encryptor.finalize()
    return base64.b64encode(encrypted).decode("utf-8")
