import codecs


def load_config_text(data: bytes) -> str:
    """Decode an uploaded firewall configuration to text.

    UTF-8 (with or without BOM) and UTF-16 with BOM are recognised; undecodable
    bytes are replaced rather than rejected. Line endings are normalised to '\\n'.
    """
    if data.startswith(codecs.BOM_UTF16_LE) or data.startswith(codecs.BOM_UTF16_BE):
        text = data.decode("utf-16", errors="replace")
    else:
        text = data.decode("utf-8-sig", errors="replace")
    return text.replace("\r\n", "\n").replace("\r", "\n")
