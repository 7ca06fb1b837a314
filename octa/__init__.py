"""Read, edit and write Octatrack project, bank, arrangement and sample attribute files."""

from .errors import (  # noqa: F401
    CapacityError,
    ConflictError,
    FormatError,
    OctaError,
    StorageError,
    ValidationError,
)
from .codec import Record  # noqa: F401
from .samples import (  # noqa: F401
    MAX_SLICES,
    NO_LOOP_POINT,
    LoopMode,
    SampleAttributes,
    Slice,
    TimestretchMode,
    TrigQuantization,
    bars_x100,
    decode_gain,
    decode_tempo,
    encode_gain,
    encode_tempo,
)
from .patterns import (  # noqa: F401
    AudioParameterLock,
    AudioTrackTrigs,
    MidiTrackTrigs,
    Pattern,
)
from .parts import MachineType, Part  # noqa: F401
from .banks import Bank, SlotReference  # noqa: F401
from .arrangements import (  # noqa: F401
    ArrangementBlock,
    ArrangementFile,
    LoopRow,
    PatternRow,
    ReminderRow,
)
from .projects import Project, ProjectSection, SampleSlot, SlotType  # noqa: F401
from .storage import (  # noqa: F401
    bank_path,
    create_project_scaffold,
    project_path,
    read_record,
    write_record,
)
from .audio import AudioBuffer, read_wav, write_wav  # noqa: F401
from .chains import (  # noqa: F401
    ChainSettings,
    ProcessingSettings,
    build_chains,
    create_chains,
    create_default_attributes,
    create_equal_slices,
    create_random_slices,
    deconstruct_chain,
)
from .transfer import (  # noqa: F401
    TransferPlan,
    list_bank_slot_references,
    plan_bank_transfer,
    transfer_bank,
)
