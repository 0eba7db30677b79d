"""
Código de barras Code 39 em SVG para as etiquetas de produto.
"""
from html import escape

# 9 elementos por caractere (barra, espaço, barra, ...); 1 = largo, 0 = estreito
CODE39 = {
    "0": "000110100", "1": "100100001", "2": "001100001", "3": "101100000",
    "4": "000110001", "5": "100110000", "6": "001110000", "7": "000100101",
    "8": "100100100", "9": "001100100", "A": "100001001", "B": "001001001",
    "C": "101001000", "D": "000011001", "E": "100011000", "F": "001011000",
    "G": "000001101", "H": "100001100", "I": "001001100", "J": "000011100",
    "K": "100000011", "L": "001000011", "M": "101000010", "N": "000010011",
    "O": "100010010", "P": "001010010", "Q": "000000111", "R": "100000110",
    "S": "001000110", "T": "000010110", "U": "110000001", "V": "011000001",
    "W": "111000000", "X": "010010001", "Y": "110010000", "Z": "011010000",
    "-": "010000101", ".": "110000100", " ": "011000100", "$": "010101000",
    "/": "010100010", "+": "010001010", "%": "000101010", "*": "010010100",
}

NARROW = 1
WIDE = 3


def code39_bars(value: str) -> list:
    """
    Lista de (x, largura) das barras pretas, com os delimitadores '*'.
    ValueError para caracteres fora do Code 39.
    """
    texto = str(value).strip().upper()
    if not texto or "*" in texto:
        raise ValueError(f"Código inválido para Code 39: {value!r}")
    invalidos = sorted({c for c in texto if c not in CODE39})
    if invalidos:
        raise ValueError(f"Caracteres sem Code 39 em {value!r}: {''.join(invalidos)}")

    bars = []
    x = 0
    for char in f"*{texto}*":
        for i, flag in enumerate(CODE39[char]):
            width = WIDE if flag == "1" else NARROW
            if i % 2 == 0:
                bars.append((x, width))
            x += width
        x += NARROW  # espaço entre caracteres
    return bars


def code39_svg(value: str, height: int = 40, module: float = 1.5) -> str:
    bars = code39_bars(value)
    last_x, last_w = bars[-1]
    total = (last_x + last_w) * module
    rects = "".join(
        f'<rect x="{x * module:g}" y="0" width="{w * module:g}" height="{height}" fill="#000"/>'
        for x, w in bars
    )
    return (
        f'<svg xmlns="http://www.w3.org/2000/svg" class="barcode" width="{total:g}" '
        f'height="{height}" viewBox="0 0 {total:g} {height}" role="img" '
        f'aria-label="{escape(str(value))}">{rects}</svg>'
    )
