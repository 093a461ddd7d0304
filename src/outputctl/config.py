from pydantic import BaseModel, Field, model_validator
from typing import List, Literal, Optional
from outputctl.gpioio import parse_channel
class Registry(BaseModel): kind:Literal['gpio','mock']='mock'; active_low:bool=False
class Loop(BaseModel): tick_ms:int=Field(10, gt=0); reload_s:float=Field(2.0, gt=0)
class Logging(BaseModel): enabled:bool=True; level:str='INFO'; file:Optional[str]=None
class OutputRecord(BaseModel): identifier:str=''; friendly_name:str=''
class ControllerRecord(BaseModel):
    name:str='main'
    heat:OutputRecord=Field(default_factory=OutputRecord); cool:OutputRecord=Field(default_factory=OutputRecord)
    cycle_time_s:int=Field(600, gt=0); duty_cycle:int=Field(0, ge=-100, le=100)
    min_on_s:float=Field(0.0, ge=0); min_off_s:float=Field(0.0, ge=0)
    @model_validator(mode='after')
    def _distinct_outputs(self):
        if self.heat.identifier and self.heat.identifier == self.cool.identifier:
            raise ValueError(f"controller {self.name!r}: heat and cool share {self.heat.identifier!r}")
        return self
class AppConfig(BaseModel):
    registry:Registry=Field(default_factory=Registry); loop:Loop=Field(default_factory=Loop)
    logging:Logging=Field(default_factory=Logging); controllers:List[ControllerRecord]=Field(default_factory=list)
    @model_validator(mode='after')
    def _unique_names(self):
        names=[c.name for c in self.controllers]
        if len(names)!=len(set(names)): raise ValueError("controller names must be unique")
        return self
    @model_validator(mode='after')
    def _lines_used_once(self):
        # "17", "GPIO17" and "BCM17" are one wire on the gpio backend
        def line(ident:str):
            ch=parse_channel(ident) if self.registry.kind=='gpio' else None
            return ident if ch is None else f"BCM{ch}"
        seen={}
        for c in self.controllers:
            for side,out in (('heat',c.heat),('cool',c.cool)):
                if not out.identifier: continue
                key=line(out.identifier); where=f"{c.name}.{side}"
                if key in seen: raise ValueError(f"{where} and {seen[key]} both drive {key}")
                seen[key]=where
        return self
