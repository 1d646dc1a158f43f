"""
Diário de Bordo
===============

Registro de refugo no chão de fábrica: leitura de etiqueta, dois áudios
curtos do operador (detalhe e observação) com medidor de nível em tempo
real, foto opcional e transcrição automática via Whisper.
"""

__version__ = "1.0.0"
__author__ = "Diário de Bordo Team"
