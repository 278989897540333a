"""LMC sources used across the tests"""

# Reads one value and writes it back. The OUT is at mailbox 1.
ECHO = """
        INP
echo    OUT
        HLT
"""
ECHO_OUT_ADDRESS = 1

# Counts down from the input to zero, writing every value
COUNTDOWN = """
        INP
loop    OUT
        SUB one
        BRP loop
        HLT
one     DAT 1
"""

# Never halts
FOREVER = """
loop    BRA loop
"""

ADDER = """
        INP
        STA first
        INP
        ADD first
        OUT
        HLT
first   DAT
"""

# Mailbox 0 holds a word that is not an instruction
INVALID = """
        DAT 400
"""

OVERFLOW = """
        LDA big
        ADD big
        HLT
big     DAT 999
"""
